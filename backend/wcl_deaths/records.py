from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Tuple


class InvalidRecord(ValueError):
    pass


@dataclass(frozen=True)
class DeathRecord:
    """One player's death in one fight."""

    player_name: str
    date: date
    fight_id: int
    death_order: int
    out_of: int
    ability_name: str
    # Set upstream by the analysis pipeline, never re-derived here.
    bad: bool = True

    def to_detail(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "fight_id": self.fight_id,
            "death_order": self.death_order,
            "out_of": self.out_of,
            "ability_name": self.ability_name,
        }

    @classmethod
    def from_detail(cls, player_name: str, detail: Dict[str, Any]) -> "DeathRecord":
        if not isinstance(detail, dict):
            raise InvalidRecord(f"Malformed death detail for {player_name!r}: {detail!r}")
        try:
            return cls(
                player_name=player_name,
                date=date.fromisoformat(str(detail["date"])),
                fight_id=int(detail["fight_id"]),
                death_order=int(detail["death_order"]),
                out_of=int(detail["out_of"]),
                ability_name=str(detail["ability_name"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidRecord(f"Malformed death detail for {player_name!r}: {exc}") from exc


@dataclass(frozen=True)
class PlayerSummary:
    name: str
    bad_deaths: int
    avg_death_order: float
    early_deaths: int
    details: Tuple[DeathRecord, ...] = field(default_factory=tuple)

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape; only bad deaths are listed under ``details``."""
        return {
            "name": self.name,
            "bad_deaths": self.bad_deaths,
            "avg_death_order": self.avg_death_order,
            "early_deaths": self.early_deaths,
            "details": [record.to_detail() for record in self.details if record.bad],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PlayerSummary":
        if not isinstance(payload, dict):
            raise InvalidRecord(f"Player summary must be an object, got {type(payload).__name__}.")
        name = str(payload.get("name") or "")
        raw_details = payload.get("details") or []
        if not isinstance(raw_details, list):
            raise InvalidRecord(f"Details for {name!r} must be a list.")
        details = tuple(DeathRecord.from_detail(name, detail) for detail in raw_details)
        validate_records(details)
        try:
            return cls(
                name=name,
                bad_deaths=int(payload.get("bad_deaths", 0)),
                avg_death_order=float(payload.get("avg_death_order", 0.0)),
                early_deaths=int(payload.get("early_deaths", 0)),
                details=details,
            )
        except (TypeError, ValueError) as exc:
            raise InvalidRecord(f"Malformed summary for {name!r}: {exc}") from exc


@dataclass(frozen=True)
class DateGroup:
    date: date
    records: Tuple[DeathRecord, ...]


def validate_record(record: DeathRecord) -> None:
    if not record.player_name:
        raise InvalidRecord(f"Death in fight {record.fight_id} has no player name.")
    if record.death_order < 1:
        raise InvalidRecord(
            f"{record.player_name}: death_order {record.death_order} in fight "
            f"{record.fight_id} must be at least 1."
        )
    if record.out_of < record.death_order:
        raise InvalidRecord(
            f"{record.player_name}: death_order {record.death_order} exceeds "
            f"out_of {record.out_of} in fight {record.fight_id}."
        )


def validate_records(records: Iterable[DeathRecord]) -> None:
    for record in records:
        validate_record(record)
