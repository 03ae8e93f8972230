"""Unit-extraction pipeline.

Takes a cleaned element tree (or raw HTML) plus a :class:`BuildConfig`
and returns a :class:`BuildResult`.  Each stage is a ``rows -> rows``
transform run strictly in order:

 1. segment blocks
 2. accumulate units
 3. jurisdiction-variation passes 1-4
 4. merge duplicate (type, label) units
 5. table structuring and TABLE_ROW spawning
 6. core-text recovery and derived-field backfill
 7. decision units and pathway links
 8. engineering facts
 9. chunking (with anchor remap)
10. order-in-parent renumbering
11. quality gate

All mutable build state (anchor registry, accumulator context) is local
to one call, so separate documents can be built in parallel.
"""
from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from typing import TypeAlias

from ncc_units.accumulator import accumulate_units
from ncc_units.anchors import AnchorRegistry
from ncc_units.blocks import ElementLike, parse_html, segment_blocks
from ncc_units.chunking import chunk_rows
from ncc_units.decisions import derive_decisions
from ncc_units.engineering import extract_engineering_facts
from ncc_units.enrichment import enrich_rows, merge_duplicates
from ncc_units.hierarchy import renumber_order_in_parent
from ncc_units.quality_gate import run_quality_gate
from ncc_units.tables import structure_tables
from ncc_units.unit_types import BuildConfig, BuildResult, PipelineOptions
from ncc_units.variations import extract_variations

log = logging.getLogger(__name__)

ProgressCallback: TypeAlias = Callable[[str, int], None]

DOC_ID_HEX_CHARS = 16


def compute_doc_id(html: str) -> str:
    """Stable content hash used as ``doc_id`` when none is configured."""
    return hashlib.sha256(html.encode("utf-8")).hexdigest()[:DOC_ID_HEX_CHARS]


def _reporter(progress: ProgressCallback | None) -> ProgressCallback:
    if progress is not None:
        return progress

    def _log(status: str, percent: int) -> None:
        log.debug("[%3d%%] %s", percent, status)

    return _log


def build_units(
    root: ElementLike,
    config: BuildConfig,
    options: PipelineOptions | None = None,
    progress: ProgressCallback | None = None,
) -> BuildResult:
    """Run every stage over *root*.

    Raises:
        QualityGateError: a build-fatal invariant was violated; no rows
            are returned.
    """
    options = options or PipelineOptions()
    report = _reporter(progress)
    registry = AnchorRegistry()

    report("Segmenting blocks", 5)
    blocks = segment_blocks(root)
    if not blocks:
        report("Done", 100)
        return BuildResult(rows=())

    report("Accumulating units", 15)
    rows = accumulate_units(blocks, config, registry)

    report("Extracting jurisdiction variations", 35)
    rows = extract_variations(rows, registry, options)
    variation_count = sum(1 for r in rows if r.unit_type == "STATE_VARIATION")

    report("Merging duplicates", 45)
    rows = merge_duplicates(rows, registry)

    report("Structuring tables", 50)
    rows, blob_tables = structure_tables(rows, config, registry)

    report("Recovering text and backfilling fields", 60)
    rows = enrich_rows(rows)

    report("Deriving decision units", 65)
    rows = derive_decisions(rows, registry)

    report("Mining engineering facts", 70)
    rows = extract_engineering_facts(rows, registry, options)

    report("Chunking", 80)
    rows = chunk_rows(rows, registry, options)
    rows = renumber_order_in_parent(rows)

    report("Running quality gate", 90)
    gate = run_quality_gate(rows, options)

    warnings = list(registry.warnings)
    if variation_count:
        warnings.append(f"STATE_VARIATION_EXTRACTED_BLOCKS:{variation_count}")
    if blob_tables:
        warnings.append(f"TABLES_BLOB_ONLY:{blob_tables}")
    warnings.extend(gate.warnings)

    report("Done", 100)
    log.info("Built %d rows for %s (%d build warnings)", len(gate.rows), config.doc_id, len(warnings))
    return BuildResult(rows=gate.rows, warnings=tuple(warnings))


def build_units_from_html(
    html: str,
    config: BuildConfig,
    options: PipelineOptions | None = None,
    progress: ProgressCallback | None = None,
) -> BuildResult:
    """Parse *html* with BeautifulSoup and build."""
    if not html.strip():
        return BuildResult(rows=())
    return build_units(parse_html(html), config, options, progress)
