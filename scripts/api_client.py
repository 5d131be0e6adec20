"""Lightweight REST client for the matchday API."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx


def _check(resp: httpx.Response) -> dict:
    if resp.status_code == 404:
        raise SystemExit(f"not found: {resp.json().get('detail')}")
    if resp.status_code == 409:
        raise SystemExit(f"conflict: {resp.json().get('detail')}")
    resp.raise_for_status()
    return resp.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the matchday REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--tenant", required=True, help="Tenant id sent as X-Tenant-ID")
    parser.add_argument("--list-fixtures", action="store_true", help="List recent fixtures and exit")
    parser.add_argument("--get-fixture", metavar="FIXTURE_ID", help="Fetch a fixture and exit")
    parser.add_argument("--create", metavar="DATE", help="Create a fixture for DATE (YYYY-MM-DD)")
    parser.add_argument("--team-size", type=int, default=5, help="Players per side for --create")
    parser.add_argument("--fixture", metavar="FIXTURE_ID", help="Fixture to add players to and balance")
    parser.add_argument("--add", nargs="*", default=[], help="Player IDs to add to the pool")
    parser.add_argument(
        "--method",
        choices=["ability", "performance", "random"],
        default=None,
        help="Balance the fixture with this method",
    )
    parser.add_argument("--publish", action="store_true", help="Publish teams after balancing")
    parser.add_argument("--export-path", type=Path, help="Download the teams CSV to this path")
    args = parser.parse_args()

    headers = {"X-Tenant-ID": args.tenant}
    with httpx.Client(base_url=args.base_url, headers=headers) as client:
        if args.list_fixtures:
            print(json.dumps(_check(client.get("/fixtures")), indent=2))
            return
        if args.get_fixture:
            print(json.dumps(_check(client.get(f"/fixtures/{args.get_fixture}")), indent=2))
            return

        fixture_id = args.fixture
        if args.create:
            created = _check(client.post("/fixtures", json={"match_date": args.create, "team_size": args.team_size}))
            fixture_id = created["fixture_id"]
            print(f"Created fixture {fixture_id}")
        if fixture_id is None:
            raise SystemExit("--fixture or --create is required unless using --list-fixtures/--get-fixture")

        for player_id in args.add:
            _check(client.post(f"/fixtures/{fixture_id}/pool", json={"player_id": player_id}))
        if args.add:
            print(f"Added {len(args.add)} players to the pool")

        if args.method:
            payload = _check(client.post(f"/fixtures/{fixture_id}/balance", json={"method": args.method}))
            print(f"Balanced by {payload['applied_method']} (loss={payload['loss']})")
            if payload.get("degraded"):
                print(payload.get("message"))
            for team in payload["fixture"]["teams"]:
                names = ", ".join(player["name"] for player in team["players"])
                print(f"{team['name']}: {names}")

        if args.publish:
            fixture = _check(client.get(f"/fixtures/{fixture_id}"))
            published = _check(
                client.post(
                    f"/fixtures/{fixture_id}/save-teams",
                    json={"expected_version": fixture["version"]},
                )
            )
            print(f"Teams published at {published['teams_published_at']}")

        if args.export_path:
            resp = client.get(f"/fixtures/{fixture_id}/teams.csv")
            if resp.status_code in (404, 409):
                raise SystemExit(resp.json().get("detail"))
            resp.raise_for_status()
            args.export_path.write_text(resp.text)
            print(f"Teams CSV saved to {args.export_path}")


if __name__ == "__main__":
    main()
