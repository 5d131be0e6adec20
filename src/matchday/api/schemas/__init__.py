"""Pydantic models for API I/O."""

from .fixture import (
    FixtureCreateRequest,
    FixtureResponse,
    FixtureSummaryResponse,
    PoolEntryResponse,
    SlotResponse,
    TeamResponse,
    VersionedRequest,
)
from .pool import PoolAddRequest, PoolStatusRequest
from .balance import (
    BalanceJobResponse,
    BalanceRequest,
    BalanceResponse,
    SaveTeamsRequest,
    SwapRequest,
    TemplateResponse,
)

__all__ = [
    "FixtureCreateRequest",
    "FixtureResponse",
    "FixtureSummaryResponse",
    "PoolEntryResponse",
    "SlotResponse",
    "TeamResponse",
    "VersionedRequest",
    "PoolAddRequest",
    "PoolStatusRequest",
    "BalanceJobResponse",
    "BalanceRequest",
    "BalanceResponse",
    "SaveTeamsRequest",
    "SwapRequest",
    "TemplateResponse",
]
