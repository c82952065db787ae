"""CLI entrypoint for the dashboard builder."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from .config import AppConfig, load_config
from .pipeline import fetch_observations, format_build_lines, run_build, run_inspect_join
from .util import ensure_directories, setup_logging, write_json
from .validate import Validator, format_report_lines
from .worldbank import WorldBankClient

LOGGER = logging.getLogger("dashbuilder.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dashbuilder",
        description="Country indicator dashboard builder.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    build_p = subparsers.add_parser("build", help="Fetch data, join, and render the dashboard.")
    add_common(build_p)
    build_p.add_argument(
        "--skip-validate",
        action="store_true",
        help="Do not run validation before building.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate config, document, and geometry.")
    add_common(validate_p)
    validate_p.add_argument(
        "--strict-data-files",
        action="store_true",
        help="Treat a missing or unreadable Natural Earth file as an error.",
    )

    search_p = subparsers.add_parser(
        "search-indicators",
        help="Search the World Bank indicator catalog.",
    )
    add_common(search_p)
    search_p.add_argument("pattern", help="Case-insensitive regular expression.")
    search_p.add_argument(
        "--field",
        choices=("name", "id", "source_note"),
        default="name",
        help="Catalog field to match against.",
    )
    search_p.add_argument("--limit", type=int, default=25, help="Max results to print.")
    search_p.add_argument(
        "--output-json",
        default=None,
        help="Also write all matches to this JSON file.",
    )

    fetch_p = subparsers.add_parser(
        "fetch-data",
        help="Download one indicator/year and write it as CSV.",
    )
    add_common(fetch_p)
    fetch_p.add_argument("--code", default=None, help="Indicator code (default from config).")
    fetch_p.add_argument("--year", type=int, default=None, help="Year (default from config).")

    inspect_p = subparsers.add_parser(
        "inspect-join",
        help="Write join diagnostics for the configured indicator and geometry.",
    )
    add_common(inspect_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "build.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_validate(cfg: AppConfig, *, strict_data_files: bool) -> int:
    report = Validator(cfg).run(strict_data_files=strict_data_files)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_build(cfg: AppConfig, *, skip_validate: bool) -> int:
    LOGGER.info("Starting dashboard build.")
    if not skip_validate:
        validation = Validator(cfg).run(strict_data_files=False)
        for line in format_report_lines(validation):
            LOGGER.info(line)
        if not validation.ok:
            LOGGER.error("Build aborted due to validation errors.")
            return 1

    report = run_build(cfg)
    for line in format_build_lines(report):
        LOGGER.info(line)
    if not report.ok:
        LOGGER.error("Build failed.")
        return 1
    LOGGER.info("Build finished.")
    return 0


def _run_search(
    cfg: AppConfig,
    *,
    pattern: str,
    field: str,
    limit: int,
    output_json: str | None,
) -> int:
    try:
        with WorldBankClient(cfg.worldbank, cache_dir=cfg.paths.cache_dir) as client:
            matches = client.search_indicators(pattern, field=field)
    except Exception as exc:
        LOGGER.error("Indicator search failed: %s", exc)
        return 1

    for info in matches[: max(limit, 0)]:
        LOGGER.info("%-28s %s", info.id, info.name)
    if len(matches) > limit:
        LOGGER.info("... %d more matches not shown", len(matches) - limit)
    if output_json:
        write_json(cfg.source_path.parent / output_json, [info.to_dict() for info in matches])
        LOGGER.info("Matches written to %s", output_json)
    return 0


def _run_fetch(cfg: AppConfig, *, code: str | None, year: int | None) -> int:
    chosen_code = code or cfg.indicator.code
    chosen_year = year or cfg.indicator.year
    try:
        frame = fetch_observations(cfg, code=chosen_code, year=chosen_year)
    except Exception as exc:
        LOGGER.error("Indicator download failed: %s", exc)
        return 1
    safe_code = "".join(ch if ch.isalnum() else "_" for ch in chosen_code)
    out_path = cfg.paths.data_dir / f"observations_{safe_code}_{chosen_year}.csv"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(out_path, index=False)
    LOGGER.info("Wrote %d rows to %s", len(frame), out_path)
    return 0


def _run_inspect(cfg: AppConfig) -> int:
    try:
        path, diagnostics = run_inspect_join(cfg)
    except Exception as exc:
        LOGGER.error("Join inspection failed: %s", exc)
        return 1
    LOGGER.info(
        "Join: %d geometry rows, %d matched, %d null values",
        diagnostics.geometry_rows,
        diagnostics.matched_rows,
        diagnostics.null_rows,
    )
    LOGGER.info("Join diagnostics written to %s", path)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "build":
        return _run_build(cfg, skip_validate=bool(args.skip_validate))
    if command == "validate":
        return _run_validate(cfg, strict_data_files=bool(args.strict_data_files))
    if command == "search-indicators":
        return _run_search(
            cfg,
            pattern=str(args.pattern),
            field=str(args.field),
            limit=int(args.limit),
            output_json=args.output_json,
        )
    if command == "fetch-data":
        return _run_fetch(cfg, code=args.code, year=args.year)
    if command == "inspect-join":
        return _run_inspect(cfg)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
