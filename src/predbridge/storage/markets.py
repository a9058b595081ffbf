"""Market persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predbridge.models import Market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "market_id",
    "question",
    "description",
    "category",
    "created_at",
    "end_time",
    "probability",
    "volume",
    "verified",
    "status",
    "creator_address",
    "settlement_address",
    "resolution_address",
    "contract_version",
    "resolved_outcome",
    "resolution_source",
]


def _row_to_market(row: tuple) -> Market:
    data = dict(zip(_COLUMNS, row))
    data["description"] = data["description"] or ""
    data["category"] = data["category"] or "General"
    return Market.model_validate(data)


def upsert_market(conn: DuckDBPyConnection, market: Market) -> None:
    """Insert or replace a market in the markets table."""
    updates = ",\n            ".join(f"{c} = excluded.{c}" for c in _COLUMNS[1:])
    conn.execute(
        f"""
        INSERT INTO markets ({", ".join(_COLUMNS)})
        VALUES ({", ".join("?" for _ in _COLUMNS)})
        ON CONFLICT (market_id) DO UPDATE SET
            {updates}
        """,
        [
            market.market_id,
            market.question,
            market.description,
            market.category,
            market.created_at,
            market.end_time,
            market.probability,
            market.volume,
            market.verified,
            market.status.value,
            market.creator_address,
            market.settlement_address,
            market.resolution_address,
            market.contract_version,
            market.resolved_outcome,
            market.resolution_source,
        ],
    )


def get_market(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    row = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM markets WHERE market_id = ?", [market_id]
    ).fetchone()
    return _row_to_market(row) if row else None


def list_markets(
    conn: DuckDBPyConnection,
    status: str | None = None,
    category: str | None = None,
    limit: int | None = None,
) -> list[Market]:
    """List markets, newest first, optionally filtered by status and category."""
    where = []
    params: list = []
    if status:
        where.append("status = ?")
        params.append(status)
    if category:
        where.append("category = ?")
        params.append(category)
    sql = f"SELECT {', '.join(_COLUMNS)} FROM markets"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC"
    if limit:
        sql += f" LIMIT {int(limit)}"
    return [_row_to_market(r) for r in conn.execute(sql, params).fetchall()]
