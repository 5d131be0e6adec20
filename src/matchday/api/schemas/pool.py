from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


ResponseStatusLiteral = Literal["confirmed", "declined", "pending"]


class PoolAddRequest(BaseModel):
    player_id: str = Field(min_length=1)
    response_status: ResponseStatusLiteral = "confirmed"
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=0)


class PoolStatusRequest(BaseModel):
    response_status: ResponseStatusLiteral
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(default=None, ge=0)
