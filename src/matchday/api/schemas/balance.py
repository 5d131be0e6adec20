from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from matchday.models import BalanceWeights

from .fixture import FixtureResponse


BalanceMethodLiteral = Literal["ability", "performance", "random"]


class BalanceRequest(BaseModel):
    method: BalanceMethodLiteral = "ability"
    weights: Optional[BalanceWeights] = None
    expected_version: Optional[int] = Field(default=None, ge=0)
    seed: Optional[int] = None


class BalanceJobResponse(BaseModel):
    job_id: str
    fixture_id: str
    method: str
    state: str
    progress: float
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class BalanceResponse(BaseModel):
    fixture: FixtureResponse
    job: BalanceJobResponse
    requested_method: str
    applied_method: str
    degraded: bool
    message: Optional[str] = None
    loss: Optional[float] = None
    metrics: Dict[str, float] = Field(default_factory=dict)


class SwapRequest(BaseModel):
    player_a: str = Field(min_length=1)
    player_b: str = Field(min_length=1)
    expected_version: int = Field(ge=0)


class SaveTeamsRequest(BaseModel):
    expected_version: int = Field(ge=0)
    team_a: Optional[List[str]] = None
    team_b: Optional[List[str]] = None

    @model_validator(mode="after")
    def _both_or_neither(self) -> "SaveTeamsRequest":
        if (self.team_a is None) != (self.team_b is None):
            raise ValueError("team_a and team_b must be supplied together")
        return self


class TemplateResponse(BaseModel):
    team_size: int
    defenders: int
    midfielders: int
    attackers: int
    name: str
