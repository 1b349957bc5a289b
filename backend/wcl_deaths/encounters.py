from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, ValidationError

from wcl_deaths.models import EncounterInfo

logger = logging.getLogger(__name__)


class EncounterNotFound(LookupError):
    pass


class EncounterConfigError(ValueError):
    pass


class EncounterConfig(BaseModel):
    id: int
    name: str = Field(..., min_length=1)
    bad_abilities: List[int] = Field(default_factory=list)

    def info(self) -> EncounterInfo:
        return EncounterInfo(id=self.id, name=self.name)


class EncounterCatalog(BaseModel):
    """Parsed ``config.toml``: one ``[[encounter]]`` table per boss."""

    encounter: List[EncounterConfig] = Field(default_factory=list)

    def find(self, encounter_id: int) -> EncounterConfig:
        for encounter in self.encounter:
            if encounter.id == encounter_id:
                return encounter
        raise EncounterNotFound(f"Encounter ID {encounter_id} not found in config")

    def infos(self) -> List[EncounterInfo]:
        return [encounter.info() for encounter in self.encounter]


def load_encounters(path: Path) -> EncounterCatalog:
    if not path.exists():
        raise EncounterConfigError(f"Encounter config not found: {path}")
    with path.open("rb") as handle:
        try:
            raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise EncounterConfigError(f"Invalid encounter config {path}: {exc}") from exc
    try:
        catalog = EncounterCatalog.model_validate(raw)
    except ValidationError as exc:
        raise EncounterConfigError(f"Invalid encounter config {path}: {exc}") from exc
    for encounter in catalog.encounter:
        if not encounter.bad_abilities:
            logger.warning(
                f"Encounter {encounter.id} ({encounter.name}) has no bad_abilities; "
                "no death will ever count as bad"
            )
    return catalog
