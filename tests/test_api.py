import json
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from matchday.api import TENANT_HEADER, _build_service, create_app, status_for
from matchday.config.settings import EngineSettings
from matchday.errors import (
    ConcurrencyConflictError,
    InvalidPoolSizeError,
    MethodDisabledError,
    NotFoundError,
    OperationTimeoutError,
)
from matchday.fixtures.service import FixtureService
from matchday.models import AttributeVector, BalanceWeights, NormalizationStrategy, PerformanceComposite, PlayerRecord
from matchday.notify import LoggingNotificationSink
from matchday.persistence import FixtureStore
from matchday.providers import StaticAttributeProvider, StaticTenantContext


HEADERS = {TENANT_HEADER: "club-1"}


def _players() -> list[PlayerRecord]:
    return [
        PlayerRecord(
            player_id=f"p{index:02d}",
            name=f"Player {index}",
            attributes=AttributeVector(
                goalscoring=float(index % 9) + 1.0,
                defending=float((index * 3) % 10),
                teamwork=float((index * 5) % 10),
            ),
            performance=PerformanceComposite(power_rating=float(index % 6), goal_threat=(index % 4) * 0.2),
        )
        for index in range(12)
    ]


@pytest.fixture
async def client(tmp_path):
    notifier = LoggingNotificationSink()
    service = FixtureService(
        FixtureStore(tmp_path / "api.sqlite"),
        StaticAttributeProvider(_players()),
        notifier=notifier,
        settings=EngineSettings(),
    )
    app = create_app(service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        async_client.app = app
        async_client.notifier = notifier
        yield async_client


async def _create_fixture(client, *, team_size: int = 5, players: int = 10) -> dict:
    resp = await client.post(
        "/fixtures",
        json={"match_date": "2024-03-06", "team_size": team_size},
        headers=HEADERS,
    )
    assert resp.status_code == 201
    fixture = resp.json()
    for index in range(players):
        resp = await client.post(
            f"/fixtures/{fixture['fixture_id']}/pool",
            json={"player_id": f"p{index:02d}"},
            headers=HEADERS,
        )
        assert resp.status_code == 201
        fixture = resp.json()
    return fixture


def test_status_mapping():
    assert status_for(NotFoundError("x")) == 404
    assert status_for(ConcurrencyConflictError("x")) == 409
    assert status_for(InvalidPoolSizeError("x")) == 409
    assert status_for(MethodDisabledError("x")) == 422
    assert status_for(OperationTimeoutError("x")) == 503


@pytest.mark.anyio
async def test_health_and_templates(client):
    resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}

    resp = await client.get("/templates")
    assert resp.status_code == 200
    sizes = {item["team_size"]: item for item in resp.json()}
    assert sorted(sizes) == list(range(4, 12))
    assert sizes[5]["defenders"] == 2


@pytest.mark.anyio
async def test_tenant_header_is_required(client):
    resp = await client.get("/fixtures")
    assert resp.status_code == 400

    resp = await client.get("/fixtures", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.anyio
async def test_fixtures_are_scoped_to_tenant(client):
    fixture = await _create_fixture(client, players=0)

    resp = await client.get(f"/fixtures/{fixture['fixture_id']}", headers={TENANT_HEADER: "club-2"})
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"

    resp = await client.get("/fixtures", params={"state": "Draft"}, headers=HEADERS)
    assert [item["fixture_id"] for item in resp.json()] == [fixture["fixture_id"]]

    resp = await client.get("/fixtures", params={"state": "Sideways"}, headers=HEADERS)
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_balance_swap_publish_flow(client):
    fixture = await _create_fixture(client)
    fixture_id = fixture["fixture_id"]

    resp = await client.post(
        f"/fixtures/{fixture_id}/balance",
        json={"method": "ability", "expected_version": fixture["version"], "seed": 3},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["applied_method"] == "ability"
    assert payload["degraded"] is False
    assert payload["job"]["state"] == "completed"
    fixture = payload["fixture"]
    assert fixture["state"] == "TeamsBalanced"
    team_a, team_b = fixture["teams"]
    assert [player["slot_number"] for player in team_a["players"]] == [1, 2, 3, 4, 5]
    assert team_a["players"][0]["position"] == "defense"

    resp = await client.get(f"/fixtures/{fixture_id}/balance-jobs/{payload['job']['job_id']}", headers=HEADERS)
    assert resp.json()["progress"] == pytest.approx(1.0)

    first = team_a["players"][0]["player_id"]
    second = team_b["players"][0]["player_id"]
    resp = await client.post(
        f"/fixtures/{fixture_id}/swap",
        json={"player_a": first, "player_b": second, "expected_version": fixture["version"]},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    swapped = resp.json()
    assert swapped["teams"][0]["players"][0]["player_id"] == second
    assert swapped["teams"][1]["players"][0]["player_id"] == first

    resp = await client.post(
        f"/fixtures/{fixture_id}/swap",
        json={"player_a": first, "player_b": second, "expected_version": fixture["version"]},
        headers=HEADERS,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "concurrency_conflict"

    resp = await client.post(
        f"/fixtures/{fixture_id}/save-teams",
        json={"expected_version": swapped["version"]},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["state"] == "TeamsPublished"
    assert client.notifier.messages == [("club-1", "Teams published for Wednesday's match!")]

    resp = await client.get(f"/fixtures/{fixture_id}/teams.csv", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.strip().splitlines()
    assert lines[0] == "Team,Slot,Position,PlayerId,Name"
    assert len(lines) == 11


@pytest.mark.anyio
async def test_ability_disabled_for_small_teams(client):
    fixture = await _create_fixture(client, team_size=4, players=8)

    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/balance",
        json={"method": "ability"},
        headers=HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "method_disabled"

    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/balance",
        json={"method": "performance", "seed": 1},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["fixture"]["size_a"] == 4


@pytest.mark.anyio
async def test_invalid_transitions_and_pool_errors(client):
    fixture = await _create_fixture(client, players=3)
    fixture_id = fixture["fixture_id"]

    resp = await client.post(
        f"/fixtures/{fixture_id}/lock-pool",
        json={"expected_version": fixture["version"]},
        headers=HEADERS,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_pool_size"

    resp = await client.post(
        f"/fixtures/{fixture_id}/save-teams",
        json={"expected_version": fixture["version"]},
        headers=HEADERS,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "invalid_state"

    resp = await client.post(f"/fixtures/{fixture_id}/pool", json={"player_id": "p00"}, headers=HEADERS)
    assert resp.status_code == 409

    resp = await client.post(f"/fixtures/{fixture_id}/pool", json={"player_id": "ghost"}, headers=HEADERS)
    assert resp.status_code == 404

    resp = await client.patch(
        f"/fixtures/{fixture_id}/pool/p01",
        json={"response_status": "declined", "notes": "away"},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    statuses = {entry["player_id"]: entry["response_status"] for entry in resp.json()["pool"]}
    assert statuses["p01"] == "declined"

    resp = await client.delete(f"/fixtures/{fixture_id}/pool/p02", headers=HEADERS)
    assert resp.status_code == 200
    assert "p02" not in {entry["player_id"] for entry in resp.json()["pool"]}

    resp = await client.get(f"/fixtures/{fixture_id}/teams.csv", headers=HEADERS)
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_request_validation(client):
    resp = await client.post("/fixtures", json={"match_date": "2024-03-06", "team_size": 0}, headers=HEADERS)
    assert resp.status_code == 422

    fixture = await _create_fixture(client, players=0)
    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/save-teams",
        json={"expected_version": 0, "team_a": ["p00"]},
        headers=HEADERS,
    )
    assert resp.status_code == 422

    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/cancel",
        json={"expected_version": fixture["version"]},
        headers=HEADERS,
    )
    assert resp.json()["state"] == "Cancelled"
    assert date.fromisoformat(resp.json()["match_date"]) == date(2024, 3, 6)


@pytest.mark.anyio
async def test_tenant_context_fills_missing_header(tmp_path):
    service = FixtureService(FixtureStore(tmp_path / "ctx.sqlite"), StaticAttributeProvider(_players()))
    app = create_app(service, tenant_context=StaticTenantContext("club-1"))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        resp = await client.post("/fixtures", json={"match_date": "2024-03-06", "team_size": 5})
        assert resp.status_code == 201

    assert [fixture.tenant_id for fixture in service.list_fixtures("club-1")] == ["club-1"]


def test_profile_normalization_survives_unset_environment(tmp_path):
    profile = tmp_path / "profile.json"
    profile.write_text(json.dumps({"weights": {"normalization": "percentile"}}), encoding="utf-8")
    settings = EngineSettings(db_path=str(tmp_path / "profile.sqlite"), profile_path=str(profile))

    service = _build_service(settings)
    assert service.weights.normalization is NormalizationStrategy.PERCENTILE

    configured = _build_service(settings.with_overrides(normalization=NormalizationStrategy.RANGE))
    assert configured.weights.normalization is NormalizationStrategy.RANGE


@pytest.mark.anyio
async def test_request_weights_inherit_configured_normalization(tmp_path, monkeypatch):
    service = FixtureService(
        FixtureStore(tmp_path / "weights.sqlite"),
        StaticAttributeProvider(_players()),
        weights=BalanceWeights(normalization=NormalizationStrategy.RANGE),
    )
    seen = []
    original = service.lock_pool_and_balance

    def recording(*args, **kwargs):
        seen.append(kwargs["weights"])
        return original(*args, **kwargs)

    monkeypatch.setattr(service, "lock_pool_and_balance", recording)
    app = create_app(service)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        fixture = await _create_fixture(client)
        resp = await client.post(
            f"/fixtures/{fixture['fixture_id']}/balance",
            json={
                "method": "performance",
                "seed": 2,
                "weights": {"performance": {"power_rating": 0.6, "goal_threat": 0.4}},
            },
            headers=HEADERS,
        )
        assert resp.status_code == 200

        resp = await client.post(
            f"/fixtures/{fixture['fixture_id']}/balance",
            json={"method": "performance", "seed": 2, "weights": {"normalization": "percentile"}},
            headers=HEADERS,
        )
        assert resp.status_code == 200

    assert seen[0].normalization is NormalizationStrategy.RANGE
    assert seen[0].performance.power_rating == pytest.approx(0.6)
    assert seen[1].normalization is NormalizationStrategy.PERCENTILE


@pytest.mark.anyio
async def test_swap_response_uses_its_own_snapshot(client, monkeypatch):
    fixture = await _create_fixture(client)
    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/balance",
        json={"method": "random", "seed": 4},
        headers=HEADERS,
    )
    fixture = resp.json()["fixture"]
    team_a, team_b = fixture["teams"]
    first, second = team_a["players"][0]["player_id"], team_b["players"][0]["player_id"]

    service = client.app.state.fixture_service

    def stale_read(*args, **kwargs):
        raise AssertionError("swap response must not re-read the fixture")

    monkeypatch.setattr(service, "get_view", stale_read)
    resp = await client.post(
        f"/fixtures/{fixture['fixture_id']}/swap",
        json={"player_a": first, "player_b": second, "expected_version": fixture["version"]},
        headers=HEADERS,
    )

    assert resp.status_code == 200
    swapped = resp.json()
    assert swapped["version"] == fixture["version"] + 1
    assert swapped["teams"][0]["players"][0]["player_id"] == second
