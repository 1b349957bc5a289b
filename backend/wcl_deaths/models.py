from __future__ import annotations

from typing import List, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class ReportsAnalyzeRequest(BaseModel):
    reports: List[str] = Field(..., min_length=1)
    encounter_id: int

    @field_validator("reports")
    @classmethod
    def _strip_codes(cls, value: List[str]) -> List[str]:
        codes = [code.strip() for code in value if code and code.strip()]
        if not codes:
            raise ValueError("At least one report code is required.")
        return codes


class GuildAnalyzeRequest(BaseModel):
    guild_name: str = Field(..., min_length=1)
    guild_server_slug: str = Field(..., min_length=1)
    guild_server_region: str = Field(..., min_length=1)
    start_time: int = Field(..., ge=0)
    end_time: int = Field(..., ge=0)
    encounter_id: int

    @model_validator(mode="after")
    def _check_range(self) -> "GuildAnalyzeRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time.")
        return self


AnalyzeRequest = Union[ReportsAnalyzeRequest, GuildAnalyzeRequest]


class DeathDetail(BaseModel):
    date: str
    fight_id: int
    death_order: int
    out_of: int
    ability_name: str


class PlayerResult(BaseModel):
    name: str
    bad_deaths: int
    avg_death_order: float
    early_deaths: int
    details: List[DeathDetail] = Field(default_factory=list)


class AnalyzeResponse(BaseModel):
    players: List[PlayerResult]


class EncounterInfo(BaseModel):
    model_config = {"frozen": True}

    id: int
    name: str


class EncountersResponse(BaseModel):
    encounters: List[EncounterInfo]
