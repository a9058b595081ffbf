"""Resolution records (insert-once) and the persisted resolution sub-state."""

from __future__ import annotations

from typing import TYPE_CHECKING

import duckdb

from predbridge.models import ResolutionRecord, ResolutionState

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


class DuplicateResolutionError(Exception):
    """A resolution record already exists for this market."""


_RECORD_COLUMNS = ["market_id", "outcome", "mechanism", "rationale", "tx_hash", "timestamp"]
_STATE_COLUMNS = ["market_id", "stage", "outcome", "rationale", "mechanism", "updated_at"]


def insert_resolution(conn: DuckDBPyConnection, record: ResolutionRecord) -> None:
    """Insert the market's resolution record. Raises DuplicateResolutionError on a second insert."""
    try:
        conn.execute(
            f"INSERT INTO resolutions ({', '.join(_RECORD_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?)",
            [
                record.market_id,
                record.outcome,
                record.mechanism.value,
                record.rationale,
                record.tx_hash,
                record.timestamp,
            ],
        )
    except duckdb.ConstraintException as e:
        raise DuplicateResolutionError(record.market_id) from e


def get_resolution(conn: DuckDBPyConnection, market_id: str) -> ResolutionRecord | None:
    row = conn.execute(
        f"SELECT {', '.join(_RECORD_COLUMNS)} FROM resolutions WHERE market_id = ?", [market_id]
    ).fetchone()
    return ResolutionRecord.model_validate(dict(zip(_RECORD_COLUMNS, row))) if row else None


def upsert_resolution_state(conn: DuckDBPyConnection, state: ResolutionState) -> None:
    conn.execute(
        f"""
        INSERT INTO resolution_state ({', '.join(_STATE_COLUMNS)})
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (market_id) DO UPDATE SET
            stage = excluded.stage,
            outcome = excluded.outcome,
            rationale = excluded.rationale,
            mechanism = excluded.mechanism,
            updated_at = excluded.updated_at
        """,
        [
            state.market_id,
            state.stage.value,
            state.outcome,
            state.rationale,
            state.mechanism.value if state.mechanism else None,
            state.updated_at,
        ],
    )


def get_resolution_state(conn: DuckDBPyConnection, market_id: str) -> ResolutionState | None:
    row = conn.execute(
        f"SELECT {', '.join(_STATE_COLUMNS)} FROM resolution_state WHERE market_id = ?", [market_id]
    ).fetchone()
    return ResolutionState.model_validate(dict(zip(_STATE_COLUMNS, row))) if row else None


def list_resolution_states(conn: DuckDBPyConnection, stage: str | None = None) -> list[ResolutionState]:
    sql = f"SELECT {', '.join(_STATE_COLUMNS)} FROM resolution_state"
    params: list = []
    if stage:
        sql += " WHERE stage = ?"
        params.append(stage)
    sql += " ORDER BY market_id"
    return [ResolutionState.model_validate(dict(zip(_STATE_COLUMNS, r))) for r in conn.execute(sql, params).fetchall()]
