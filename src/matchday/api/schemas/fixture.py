from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class FixtureCreateRequest(BaseModel):
    match_date: date
    team_size: int = Field(ge=1)
    team_a_name: str = Field(default="Orange", min_length=1)
    team_b_name: str = Field(default="Green", min_length=1)


class VersionedRequest(BaseModel):
    expected_version: int = Field(ge=0)


class PoolEntryResponse(BaseModel):
    player_id: str
    name: str
    response_status: str
    notes: Optional[str] = None


class SlotResponse(BaseModel):
    player_id: str
    name: str
    slot_number: int
    position: Optional[str] = None


class TeamResponse(BaseModel):
    team: str
    name: str
    players: List[SlotResponse]


class FixtureResponse(BaseModel):
    fixture_id: str
    match_date: date
    team_size: int
    team_a_name: str
    team_b_name: str
    state: str
    version: int
    balance_method: Optional[str] = None
    size_a: Optional[int] = None
    size_b: Optional[int] = None
    teams_locked_at: Optional[datetime] = None
    teams_published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    pool: List[PoolEntryResponse] = Field(default_factory=list)
    teams: List[TeamResponse] = Field(default_factory=list)


class FixtureSummaryResponse(BaseModel):
    fixture_id: str
    match_date: date
    team_size: int
    state: str
    version: int
    updated_at: datetime
