"""NCC unit extraction: HTML building-code text to retrieval-ready unit rows."""

from ncc_units.pipeline import build_units, build_units_from_html, compute_doc_id
from ncc_units.unit_store import SchemaVersionError, UnitStore, init_db
from ncc_units.unit_types import (
    BuildConfig,
    BuildResult,
    PipelineOptions,
    QualityGateError,
    UnitRow,
)

__all__ = [
    "BuildConfig",
    "BuildResult",
    "PipelineOptions",
    "QualityGateError",
    "SchemaVersionError",
    "UnitRow",
    "UnitStore",
    "build_units",
    "build_units_from_html",
    "compute_doc_id",
    "init_db",
]
