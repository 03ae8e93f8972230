"""DuckDB persistence for built unit tables.

Tables:
    units            - one row per unit, keyed by (doc_id, anchor_id)
    build_warnings   - build-level soft warnings per document
    _schema_version  - schema version tracking

A document's rows are written as a whole: :meth:`UnitStore.write_build`
replaces every earlier row for that ``doc_id`` inside one transaction.
"""
from __future__ import annotations

import importlib
from dataclasses import fields
from pathlib import Path
from typing import Any

from ncc_units.unit_types import UNIT_COLUMNS, BuildResult, UnitRow

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

SCHEMA_VERSION = "1.0.0"
SCHEMA_KEY = "units"


class SchemaVersionError(RuntimeError):
    """Raised when a units DB schema version does not match expected."""


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_COLUMN_LIST = ", ".join(f"\"{name}\"" for name in UNIT_COLUMNS)

_SQL_TYPES: dict[str, str] = {
    "str": "VARCHAR",
    "int": "INTEGER",
    "float": "DOUBLE",
    "bool": "BOOLEAN",
}


def _column_type(annotation: object) -> str:
    # Tuples and structured payloads are stored as JSON text.
    return _SQL_TYPES.get(str(annotation), "VARCHAR")


def _units_ddl() -> str:
    types = {f.name: _column_type(f.type) for f in fields(UnitRow)}
    columns = ",\n".join(f"    \"{name}\" {types[name]}" for name in UNIT_COLUMNS)
    return (
        "CREATE TABLE IF NOT EXISTS units (\n"
        f"{columns},\n"
        "    seq INTEGER NOT NULL,\n"
        "    PRIMARY KEY (doc_id, anchor_id)\n"
        ")"
    )


_SCHEMA_DDL = f"""
-- Schema version tracking
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
);

{_units_ddl()};

CREATE TABLE IF NOT EXISTS build_warnings (
    doc_id VARCHAR NOT NULL,
    seq INTEGER NOT NULL,
    message VARCHAR NOT NULL,
    PRIMARY KEY (doc_id, seq)
);
"""


def _read_schema_version(conn: Any) -> str:
    try:
        result = conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = ?", [SCHEMA_KEY],
        ).fetchone()
        return str(result[0]) if result else "unknown"
    except _duckdb_mod.Error:
        return "unknown"


def ensure_schema_version(
    conn: Any,
    *,
    db_path: Path | None = None,
    expected: str = SCHEMA_VERSION,
) -> str:
    """Validate schema version for an open DuckDB connection.

    Returns actual schema version on success.
    Raises SchemaVersionError on mismatch.
    """
    actual = _read_schema_version(conn)
    if actual != expected:
        where = f" in {db_path}" if db_path is not None else ""
        raise SchemaVersionError(
            f"Schema version mismatch{where}: expected {expected}, got {actual}"
        )
    return actual


# ---------------------------------------------------------------------------
# UnitStore
# ---------------------------------------------------------------------------


class UnitStore:
    """Read/write interface to a units DuckDB file."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        create_if_missing: bool = False,
        read_only: bool = False,
    ) -> None:
        self._db_path = Path(db_path)
        if not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Units database not found: {self._db_path}")
        self._conn: Any = _duckdb_mod.connect(str(self._db_path), read_only=read_only)
        if read_only:
            try:
                ensure_schema_version(self._conn, db_path=self._db_path)
            except SchemaVersionError:
                self._conn.close()
                raise
        else:
            self._create_schema()

    def _create_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.execute(
            "INSERT OR REPLACE INTO _schema_version (table_name, version) VALUES (?, ?)",
            [SCHEMA_KEY, SCHEMA_VERSION],
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> UnitStore:
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def schema_version(self) -> str:
        return _read_schema_version(self._conn)

    # -- writes ------------------------------------------------------------

    def write_build(self, doc_id: str, result: BuildResult) -> int:
        """Replace all stored rows and warnings for *doc_id*; return rows written."""
        records = result.to_records()
        placeholders = ", ".join("?" for _ in range(len(UNIT_COLUMNS) + 1))
        insert_sql = f"INSERT INTO units ({_COLUMN_LIST}, seq) VALUES ({placeholders})"
        self._conn.execute("BEGIN TRANSACTION")
        try:
            self._conn.execute("DELETE FROM units WHERE doc_id = ?", [doc_id])
            self._conn.execute("DELETE FROM build_warnings WHERE doc_id = ?", [doc_id])
            if records:
                self._conn.executemany(
                    insert_sql,
                    [[*(r[c] for c in UNIT_COLUMNS), i] for i, r in enumerate(records)],
                )
            if result.warnings:
                self._conn.executemany(
                    "INSERT INTO build_warnings (doc_id, seq, message) VALUES (?, ?, ?)",
                    [[doc_id, i, msg] for i, msg in enumerate(result.warnings)],
                )
            self._conn.execute("COMMIT")
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        return len(records)

    # -- reads -------------------------------------------------------------

    def load_units(self, doc_id: str | None = None) -> list[dict[str, Any]]:
        """Stored unit records, per document in build order."""
        sql = f"SELECT {_COLUMN_LIST} FROM units"
        params: list[Any] = []
        if doc_id is not None:
            sql += " WHERE doc_id = ?"
            params.append(doc_id)
        sql += " ORDER BY doc_id, seq"
        rows = self._conn.execute(sql, params).fetchall()
        return [dict(zip(UNIT_COLUMNS, row)) for row in rows]

    def build_warnings(self, doc_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT message FROM build_warnings WHERE doc_id = ? ORDER BY seq", [doc_id],
        ).fetchall()
        return [str(r[0]) for r in rows]

    def doc_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT DISTINCT doc_id FROM units ORDER BY doc_id").fetchall()
        return [str(r[0]) for r in rows]

    def count_units(self, doc_id: str | None = None) -> int:
        if doc_id is None:
            row = self._conn.execute("SELECT COUNT(*) FROM units").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM units WHERE doc_id = ?", [doc_id],
            ).fetchone()
        return int(row[0]) if row else 0


def init_db(db_path: Path | str) -> UnitStore:
    """Open (creating if needed) a writable store with the current schema."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return UnitStore(db_path, create_if_missing=True)
