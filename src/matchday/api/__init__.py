"""REST API for fixture assembly and team balancing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Type

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from matchday.api.schemas import (
    BalanceJobResponse,
    BalanceRequest,
    BalanceResponse,
    FixtureCreateRequest,
    FixtureResponse,
    FixtureSummaryResponse,
    PoolAddRequest,
    PoolEntryResponse,
    PoolStatusRequest,
    SaveTeamsRequest,
    SlotResponse,
    SwapRequest,
    TeamResponse,
    TemplateResponse,
    VersionedRequest,
)
from matchday.config.settings import EngineSettings
from matchday.config.templates import iter_templates
from matchday.config_loader import BalanceProfile
from matchday.errors import (
    ConcurrencyConflictError,
    DuplicateEntryError,
    InputValidationError,
    InvalidStateError,
    MatchdayError,
    MethodDisabledError,
    NotFoundError,
    OperationTimeoutError,
    TemplateConfigError,
)
from matchday.fixtures.service import FixtureService, FixtureView
from matchday.notify import HttpNotificationSink, LoggingNotificationSink
from matchday.persistence import BalanceJob, FixtureRecord, FixtureStore
from matchday.pool import TeamExportError
from matchday.providers import StaticAttributeProvider, TenantContext


logger = logging.getLogger("uvicorn.error")

TENANT_HEADER = "X-Tenant-ID"

_STATUS_CODES: Dict[Type[MatchdayError], int] = {
    InputValidationError: 422,
    NotFoundError: 404,
    DuplicateEntryError: 409,
    InvalidStateError: 409,
    MethodDisabledError: 422,
    ConcurrencyConflictError: 409,
    OperationTimeoutError: 503,
    TemplateConfigError: 500,
}


def status_for(exc: MatchdayError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return 400


def job_to_response(job: BalanceJob) -> BalanceJobResponse:
    return BalanceJobResponse(
        job_id=job.job_id,
        fixture_id=job.fixture_id,
        method=job.method,
        state=job.state,
        progress=job.progress,
        message=job.message,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )


def fixture_to_summary(fixture: FixtureRecord) -> FixtureSummaryResponse:
    return FixtureSummaryResponse(
        fixture_id=fixture.fixture_id,
        match_date=fixture.match_date,
        team_size=fixture.team_size,
        state=fixture.state,
        version=fixture.version,
        updated_at=fixture.updated_at,
    )


def _build_service(settings: EngineSettings) -> FixtureService:
    # Only the default path may fall back to a temporary database.
    store = FixtureStore(
        settings.db_path,
        timeout=settings.transaction_timeout,
        allow_fallback=settings.db_path == EngineSettings().db_path,
    )
    if settings.players_csv:
        provider = StaticAttributeProvider.from_csv(settings.players_csv)
        logger.info("Loaded %s players from %s", len(provider), settings.players_csv)
    else:
        provider = StaticAttributeProvider()
    notifier = HttpNotificationSink(settings.notify_url) if settings.notify_url else LoggingNotificationSink()
    profile = BalanceProfile.load(Path(settings.profile_path)) if settings.profile_path else BalanceProfile()
    weights = settings.apply_normalization(profile.weights)
    return FixtureService(
        store,
        provider,
        notifier=notifier,
        settings=settings,
        weights=weights,
        templates=profile.templates,
    )


def create_app(
    service: Optional[FixtureService] = None,
    *,
    settings: Optional[EngineSettings] = None,
    tenant_context: Optional[TenantContext] = None,
) -> FastAPI:
    """Build the API. Requests without an X-Tenant-ID header fall back to ``tenant_context`` when given."""

    app = FastAPI(title="matchday")
    if service is None:
        service = _build_service(settings or EngineSettings.from_env())
    app.state.fixture_service = service
    provider = service.provider

    @app.exception_handler(MatchdayError)
    async def matchday_error_handler(request: Request, exc: MatchdayError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})

    def tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> str:
        if (not x_tenant_id or not x_tenant_id.strip()) and tenant_context is not None:
            x_tenant_id = tenant_context.current_tenant_id()
        if not x_tenant_id or not x_tenant_id.strip():
            raise HTTPException(status_code=400, detail=f"{TENANT_HEADER} header is required")
        return x_tenant_id.strip()

    def player_name(player_id: str) -> str:
        try:
            return provider.get_attributes(player_id).name
        except NotFoundError:
            return player_id

    def view_to_response(view: FixtureView) -> FixtureResponse:
        fixture = view.fixture
        teams: List[TeamResponse] = []
        if view.team_a or view.team_b:
            rows = service.sheet_for_view(view)
            for team, team_name in (("A", fixture.team_a_name), ("B", fixture.team_b_name)):
                teams.append(
                    TeamResponse(
                        team=team,
                        name=team_name,
                        players=[
                            SlotResponse(
                                player_id=row.player_id,
                                name=row.name,
                                slot_number=row.slot_number,
                                position=row.position,
                            )
                            for row in rows
                            if row.team == team
                        ],
                    )
                )
        return FixtureResponse(
            fixture_id=fixture.fixture_id,
            match_date=fixture.match_date,
            team_size=fixture.team_size,
            team_a_name=fixture.team_a_name,
            team_b_name=fixture.team_b_name,
            state=fixture.state,
            version=fixture.version,
            balance_method=fixture.balance_method,
            size_a=fixture.size_a,
            size_b=fixture.size_b,
            teams_locked_at=fixture.teams_locked_at,
            teams_published_at=fixture.teams_published_at,
            created_at=fixture.created_at,
            updated_at=fixture.updated_at,
            pool=[
                PoolEntryResponse(
                    player_id=entry.player_id,
                    name=player_name(entry.player_id),
                    response_status=entry.response_status,
                    notes=entry.notes,
                )
                for entry in view.pool
            ],
            teams=teams,
        )

    def current_view(tenant: str, fixture_id: str) -> FixtureResponse:
        return view_to_response(service.get_view(tenant, fixture_id))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/templates", response_model=List[TemplateResponse])
    async def list_templates():
        return [
            TemplateResponse(
                team_size=template.team_size,
                defenders=template.defenders,
                midfielders=template.midfielders,
                attackers=template.attackers,
                name=template.name,
            )
            for template in iter_templates(service.templates)
        ]

    @app.post("/fixtures", response_model=FixtureResponse, status_code=201)
    def create_fixture(payload: FixtureCreateRequest, tenant: str = Depends(tenant_id)):
        fixture = service.create_fixture(
            tenant,
            match_date=payload.match_date,
            team_size=payload.team_size,
            team_a_name=payload.team_a_name,
            team_b_name=payload.team_b_name,
        )
        return current_view(tenant, fixture.fixture_id)

    @app.get("/fixtures", response_model=List[FixtureSummaryResponse])
    def list_fixtures(state: Optional[str] = None, limit: int = 50, tenant: str = Depends(tenant_id)):
        limit = max(1, min(limit, 200))
        return [fixture_to_summary(fixture) for fixture in service.list_fixtures(tenant, state=state, limit=limit)]

    @app.get("/fixtures/{fixture_id}", response_model=FixtureResponse)
    def get_fixture(fixture_id: str, tenant: str = Depends(tenant_id)):
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/pool", response_model=FixtureResponse, status_code=201)
    def add_to_pool(fixture_id: str, payload: PoolAddRequest, tenant: str = Depends(tenant_id)):
        service.add_to_pool(
            tenant,
            fixture_id,
            payload.player_id,
            response_status=payload.response_status,
            notes=payload.notes,
            expected_version=payload.expected_version,
        )
        return current_view(tenant, fixture_id)

    @app.patch("/fixtures/{fixture_id}/pool/{player_id}", response_model=FixtureResponse)
    def set_response_status(
        fixture_id: str,
        player_id: str,
        payload: PoolStatusRequest,
        tenant: str = Depends(tenant_id),
    ):
        service.set_response_status(
            tenant,
            fixture_id,
            player_id,
            payload.response_status,
            notes=payload.notes,
            expected_version=payload.expected_version,
        )
        return current_view(tenant, fixture_id)

    @app.delete("/fixtures/{fixture_id}/pool/{player_id}", response_model=FixtureResponse)
    def remove_from_pool(
        fixture_id: str,
        player_id: str,
        expected_version: Optional[int] = None,
        tenant: str = Depends(tenant_id),
    ):
        service.remove_from_pool(tenant, fixture_id, player_id, expected_version=expected_version)
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/lock-pool", response_model=FixtureResponse)
    def lock_pool(fixture_id: str, payload: VersionedRequest, tenant: str = Depends(tenant_id)):
        service.lock_pool(tenant, fixture_id, expected_version=payload.expected_version)
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/unlock-pool", response_model=FixtureResponse)
    def unlock_pool(fixture_id: str, payload: VersionedRequest, tenant: str = Depends(tenant_id)):
        service.unlock_pool(tenant, fixture_id, expected_version=payload.expected_version)
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/balance", response_model=BalanceResponse)
    def lock_pool_and_balance(fixture_id: str, payload: BalanceRequest, tenant: str = Depends(tenant_id)):
        weights = payload.weights
        if weights is not None and "normalization" not in weights.model_fields_set:
            weights = weights.model_copy(update={"normalization": service.weights.normalization})
        outcome = service.lock_pool_and_balance(
            tenant,
            fixture_id,
            method=payload.method,
            weights=weights,
            expected_version=payload.expected_version,
            seed=payload.seed,
        )
        result = outcome.result
        return BalanceResponse(
            fixture=current_view(tenant, fixture_id),
            job=job_to_response(outcome.job),
            requested_method=result.requested_method.value,
            applied_method=result.applied_method.value,
            degraded=result.degraded,
            message=result.message,
            loss=result.loss,
            metrics=dict(result.metrics),
        )

    @app.get("/fixtures/{fixture_id}/balance-jobs/{job_id}", response_model=BalanceJobResponse)
    def get_balance_job(fixture_id: str, job_id: str, tenant: str = Depends(tenant_id)):
        return job_to_response(service.get_job(tenant, fixture_id, job_id))

    @app.post("/fixtures/{fixture_id}/swap", response_model=FixtureResponse)
    def swap_players(fixture_id: str, payload: SwapRequest, tenant: str = Depends(tenant_id)):
        view = service.swap_players(
            tenant,
            fixture_id,
            payload.player_a,
            payload.player_b,
            expected_version=payload.expected_version,
        )
        return view_to_response(view)

    @app.post("/fixtures/{fixture_id}/save-teams", response_model=FixtureResponse)
    def save_teams(fixture_id: str, payload: SaveTeamsRequest, tenant: str = Depends(tenant_id)):
        service.save_teams(
            tenant,
            fixture_id,
            expected_version=payload.expected_version,
            team_a=payload.team_a,
            team_b=payload.team_b,
        )
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/unlock-teams", response_model=FixtureResponse)
    def unlock_teams(fixture_id: str, payload: VersionedRequest, tenant: str = Depends(tenant_id)):
        service.unlock_teams(tenant, fixture_id, expected_version=payload.expected_version)
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/complete", response_model=FixtureResponse)
    def complete(fixture_id: str, payload: VersionedRequest, tenant: str = Depends(tenant_id)):
        service.complete(tenant, fixture_id, expected_version=payload.expected_version)
        return current_view(tenant, fixture_id)

    @app.post("/fixtures/{fixture_id}/cancel", response_model=FixtureResponse)
    def cancel(fixture_id: str, payload: VersionedRequest, tenant: str = Depends(tenant_id)):
        service.cancel(tenant, fixture_id, expected_version=payload.expected_version)
        return current_view(tenant, fixture_id)

    @app.get("/fixtures/{fixture_id}/teams.csv")
    def export_teams(fixture_id: str, tenant: str = Depends(tenant_id)):
        try:
            csv_text = service.export_teams_csv(tenant, fixture_id)
        except TeamExportError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return Response(
            content=csv_text,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={fixture_id}-teams.csv"},
        )

    return app


__all__ = ["create_app", "status_for", "TENANT_HEADER"]
