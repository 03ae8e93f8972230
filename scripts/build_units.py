#!/usr/bin/env python3
"""Build NCC unit tables from cleaned HTML documents.

Each input HTML file is run through :func:`ncc_units.pipeline.build_units_from_html`
and its rows are written to a DuckDB file (replacing earlier rows for the
same ``doc_id``).  Optionally all rows are also exported as JSON Lines.
Documents are independent, so ``--workers`` builds them in parallel.

A document that fails the quality gate is logged and skipped; the script
exits non-zero if any document failed.

Usage:
    python3 scripts/build_units.py \
        --inputs html/ncc2022_vol1.html \
        --output out/units.duckdb \
        --volume V1 --version-date "NCC 2022"

    # Several documents, shared config, JSONL export:
    python3 scripts/build_units.py \
        --inputs html/ \
        --config build_config.json \
        --output out/units.duckdb \
        --jsonl out/units.jsonl \
        --workers 4
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import asdict, dataclass, field
from multiprocessing import Pool
from pathlib import Path
from typing import Any

from ncc_units.html_utils import read_file
from ncc_units.io_utils import load_json, save_jsonl
from ncc_units.pipeline import build_units_from_html, compute_doc_id
from ncc_units.run_manifest import (
    build_manifest,
    generate_run_id,
    git_commit_hash,
    write_manifest,
)
from ncc_units.unit_store import init_db
from ncc_units.unit_types import (
    BuildConfig,
    BuildResult,
    PipelineOptions,
    QualityGateError,
)

log = logging.getLogger("build_units")

HTML_SUFFIXES: tuple[str, ...] = (".htm", ".html")


@dataclass(slots=True)
class DocOutcome:
    source_file: str
    doc_id: str = ""
    result: BuildResult | None = None
    error: str = ""


@dataclass(slots=True)
class RunStats:
    processed_docs: int = 0
    failed_docs: int = 0
    rows: int = 0
    rows_by_type: dict[str, int] = field(default_factory=dict[str, int])
    build_warnings: int = 0

    def accumulate(self, result: BuildResult) -> None:
        self.processed_docs += 1
        self.rows += len(result.rows)
        self.build_warnings += len(result.warnings)
        for row in result.rows:
            self.rows_by_type[row.unit_type] = self.rows_by_type.get(row.unit_type, 0) + 1


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def discover_inputs(paths: list[Path]) -> list[Path]:
    """Expand directories to their HTML files; keep explicit files as given."""
    found: list[Path] = []
    for path in paths:
        if path.is_dir():
            found.extend(
                sorted(p for p in path.rglob("*") if p.suffix.lower() in HTML_SUFFIXES)
            )
        elif path.is_file():
            found.append(path)
        else:
            log.warning("Input not found: %s", path)
    return found


def load_base_config(args: argparse.Namespace) -> dict[str, str]:
    """Config file values overridden by explicit flags (``doc_id`` excluded)."""
    base: dict[str, str] = {}
    if args.config is not None:
        data = load_json(args.config)
        if not isinstance(data, dict):
            raise ValueError(f"Config file must hold a JSON object: {args.config}")
        base = {str(k): str(v) for k, v in data.items()}
    for key, value in (
        ("volume", args.volume),
        ("state_variation", args.state),
        ("version_date", args.version_date),
    ):
        if value is not None:
            base[key] = value
    return base


def config_for(base: dict[str, str], html: str, file_path: Path, doc_id: str | None) -> BuildConfig:
    data = dict(base)
    data["doc_id"] = doc_id or data.get("doc_id") or compute_doc_id(html)
    data["source_file"] = file_path.name
    return BuildConfig.from_dict(data)


# ---------------------------------------------------------------------------
# Per-document worker
# ---------------------------------------------------------------------------


def _process_one_doc(
    item: tuple[Path, dict[str, str], dict[str, Any], str | None],
) -> DocOutcome:
    """Build one document; failures are captured on the outcome, not raised."""
    file_path, base, options_data, doc_id = item
    outcome = DocOutcome(source_file=str(file_path))
    html = read_file(file_path)
    if not html.strip():
        outcome.error = "empty or unreadable"
        return outcome
    try:
        config = config_for(base, html, file_path, doc_id)
        outcome.doc_id = config.doc_id
        outcome.result = build_units_from_html(html, config, PipelineOptions(**options_data))
    except (QualityGateError, ValueError) as exc:
        outcome.error = str(exc)
    return outcome


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build NCC unit tables from cleaned HTML documents.",
    )
    parser.add_argument(
        "--inputs",
        type=Path,
        nargs="+",
        required=True,
        help="HTML files or directories containing *.htm / *.html",
    )
    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Path to output DuckDB file",
    )
    parser.add_argument(
        "--jsonl",
        type=Path,
        default=None,
        help="Optional JSON Lines export of every built row",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with BuildConfig fields (volume, state_variation, ...)",
    )
    parser.add_argument("--doc-id", default=None, help="doc_id (single input only)")
    parser.add_argument("--volume", default=None, help="Volume code, e.g. V1")
    parser.add_argument("--state", default=None, help="Jurisdiction variant code, e.g. NSW")
    parser.add_argument("--version-date", default=None, help='Version label, e.g. "NCC 2022"')
    parser.add_argument(
        "--leakage-severity",
        choices=("warn", "fail"),
        default="warn",
        help="How to treat jurisdiction instructions left in national text (default: warn)",
    )
    parser.add_argument("--max-words", type=int, default=600, help="Chunk upper bound (default: 600)")
    parser.add_argument("--min-words", type=int, default=200, help="Chunk lower bound (default: 200)")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of parallel workers (default: 1)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    run_id = generate_run_id()
    t0 = time.time()

    files = discover_inputs(args.inputs)
    if not files:
        log.error("No HTML inputs found")
        return 1
    if args.doc_id and len(files) > 1:
        log.error("--doc-id can only be used with a single input")
        return 1

    try:
        base = load_base_config(args)
        options = PipelineOptions(
            max_words=args.max_words,
            min_words=args.min_words,
            leakage_severity=args.leakage_severity,
        )
    except ValueError as exc:
        log.error("Invalid configuration: %s", exc)
        return 1

    options_data = asdict(options)
    work_items = [(f, base, options_data, args.doc_id) for f in files]
    stats = RunStats()
    records: list[dict[str, Any]] = []

    store = init_db(args.output)
    t_build = time.time()
    try:
        if args.workers <= 1:
            outcomes = map(_process_one_doc, work_items)
            _consume(outcomes, store, stats, records, collect=args.jsonl is not None)
        else:
            log.info("Processing %d documents with %d workers", len(files), args.workers)
            with Pool(processes=args.workers) as pool:
                _consume(
                    pool.imap(_process_one_doc, work_items),
                    store, stats, records, collect=args.jsonl is not None,
                )
    finally:
        store.close()
    build_sec = time.time() - t_build

    if args.jsonl is not None:
        save_jsonl(records, args.jsonl)
        log.info("Wrote %d rows to %s", len(records), args.jsonl)

    manifest = build_manifest(
        run_id=run_id,
        db_path=args.output,
        input_source={"inputs": [str(p) for p in args.inputs], "files": len(files)},
        timings_sec={"build": round(build_sec, 3), "total": round(time.time() - t0, 3)},
        errors_count=stats.failed_docs,
        stats=asdict(stats),
        git_commit=git_commit_hash(search_from=Path(__file__)),
        options=options_data,
    )
    canonical, _ = write_manifest(args.output, manifest)
    log.info(
        "Built %d rows from %d documents (%d failed); manifest: %s",
        stats.rows, stats.processed_docs, stats.failed_docs, canonical,
    )
    return 1 if stats.failed_docs else 0


def _consume(
    outcomes: Any,
    store: Any,
    stats: RunStats,
    records: list[dict[str, Any]],
    *,
    collect: bool,
) -> None:
    for outcome in outcomes:
        if outcome.result is None:
            stats.failed_docs += 1
            log.error("FAILED %s: %s", outcome.source_file, outcome.error)
            continue
        written = store.write_build(outcome.doc_id, outcome.result)
        stats.accumulate(outcome.result)
        if collect:
            records.extend(outcome.result.to_records())
        for warning in outcome.result.warnings:
            log.warning("%s: %s", outcome.source_file, warning)
        log.info("%s -> %s (%d rows)", outcome.source_file, outcome.doc_id, written)


if __name__ == "__main__":
    sys.exit(main())
