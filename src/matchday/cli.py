"""Command-line interface for offline team balancing and serving the API."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from matchday.balancing import BalanceMethod, balance
from matchday.config.settings import EngineSettings
from matchday.config.templates import resolve
from matchday.config_loader import BalanceProfile
from matchday.errors import MatchdayError, TemplateConfigError
from matchday.ingest import load_player_rows, rows_to_records
from matchday.models import NormalizationStrategy
from matchday.pool import build_team_sheet, export_teams_to_csv


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Balance small-sided football teams")
    parser.add_argument("--log-level", default="INFO", help="Logging level (e.g., INFO, DEBUG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    balance_parser = subparsers.add_parser("balance", help="Split a player CSV into two teams")
    balance_parser.add_argument("players", type=Path, help="Path to players CSV")
    balance_parser.add_argument(
        "--method",
        choices=[method.value for method in BalanceMethod],
        default=BalanceMethod.ABILITY.value,
        help="Balancing strategy",
    )
    balance_parser.add_argument(
        "--pool",
        nargs="*",
        default=None,
        help="Player IDs to balance (default: every non-retired player in the CSV)",
    )
    balance_parser.add_argument(
        "--players-column",
        action="append",
        default=[],
        help="Mapping for player CSV columns (e.g., name=First Name|Last Name)",
    )
    balance_parser.add_argument(
        "--normalization",
        choices=[strategy.value for strategy in NormalizationStrategy],
        default=None,
        help="Performance gap normaliser (default from MATCHDAY_NORMALIZATION)",
    )
    balance_parser.add_argument("--iterations", type=int, default=None, help="Local search evaluation budget")
    balance_parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible splits")
    balance_parser.add_argument("--team-a-name", default="Orange", help="Label for team A")
    balance_parser.add_argument("--team-b-name", default="Green", help="Label for team B")
    balance_parser.add_argument("--load-profile", type=Path, default=None, help="Load balancing profile JSON")
    balance_parser.add_argument("--save-profile", type=Path, default=None, help="Save balancing profile JSON")
    balance_parser.add_argument("--output", type=Path, default=Path("teams.csv"), help="Output CSV path")
    balance_parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Optional path to write load and balance summary JSON",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser.parse_args(argv)


def _parse_mapping(entries: list[str]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for entry in entries:
        if "=" not in entry:
            raise ValueError(f"Invalid mapping entry '{entry}', expected key=value")
        key, value = entry.split("=", 1)
        mapping[key.strip()] = value.strip()
    return mapping


def _preview(items: list[str]) -> str:
    preview = ", ".join(items[:5])
    more = len(items) - 5
    suffix = f", +{more} more" if more > 0 else ""
    return f"{preview}{suffix}"


def _run_balance(args: argparse.Namespace) -> int:
    settings = EngineSettings.from_env()
    profile_path = args.load_profile or (Path(settings.profile_path) if settings.profile_path else None)
    profile = BalanceProfile.load(profile_path) if profile_path else BalanceProfile()

    players_mapping = dict(profile.players_mapping) | _parse_mapping(args.players_column)
    rows = load_player_rows(args.players, mapping=players_mapping or None)
    records, report = rows_to_records(rows)
    print(f"Loaded {report.loaded}/{report.total_rows} players")
    if report.skipped_rows:
        print(f"Skipped rows: {_preview(report.skipped_rows)}")
    if report.missing_performance:
        print(f"Players missing performance data: {_preview(report.missing_performance)}")

    if args.save_profile:
        BalanceProfile(profile.weights, profile.templates, players_mapping).save(args.save_profile)
        print(f"Saved balancing profile to {args.save_profile}")

    by_id = {record.player_id: record for record in records}
    if args.pool:
        unknown = [player_id for player_id in args.pool if player_id not in by_id]
        if unknown:
            raise SystemExit(f"Unknown players in --pool: {_preview(unknown)}")
        pool = [by_id[player_id] for player_id in args.pool]
    else:
        pool = [record for record in records if not record.is_retired]

    overrides = {}
    if args.iterations is not None:
        overrides["search_iterations"] = max(1, args.iterations)
    if args.normalization:
        overrides["normalization"] = NormalizationStrategy(args.normalization)
    settings = settings.with_overrides(**overrides)
    weights = settings.apply_normalization(profile.weights)

    size_a = (len(pool) + 1) // 2
    try:
        result = balance(
            pool,
            method=args.method,
            template=profile.templates.get(size_a),
            weights=weights,
            settings=settings,
            seed=args.seed,
        )
    except MatchdayError as exc:
        raise SystemExit(f"Balancing failed: {exc.message}") from exc

    names = {record.player_id: record.name for record in pool}
    sheet = []
    for team, team_name, players in (("A", args.team_a_name, result.team_a), ("B", args.team_b_name, result.team_b)):
        try:
            template = resolve(len(players), profile.templates)
        except TemplateConfigError:
            template = None
        slots = [(index, player.player_id) for index, player in enumerate(players, start=1)]
        sheet.extend(build_team_sheet(team, team_name, slots, names, template))
    args.output.write_text(export_teams_to_csv(sheet), encoding="utf-8")
    print(
        f"Balanced {len(pool)} players by {result.applied_method.value} "
        f"({len(result.team_a)}v{len(result.team_b)}); wrote {args.output}"
    )
    if result.degraded and result.message:
        print(result.message)

    if args.report:
        payload = {
            "load": report.as_dict(),
            "requested_method": result.requested_method.value,
            "applied_method": result.applied_method.value,
            "degraded": result.degraded,
            "message": result.message,
            "loss": result.loss,
            "metrics": dict(result.metrics),
            "evaluated": result.evaluated,
            "team_a": [player.player_id for player in result.team_a],
            "team_b": [player.player_id for player in result.team_b],
        }
        args.report.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Wrote balance report to {args.report}")
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("matchday.api:create_app", host=args.host, port=args.port, reload=args.reload, factory=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO))
    if args.command == "balance":
        return _run_balance(args)
    return _run_serve(args)


if __name__ == "__main__":
    raise SystemExit(main())
