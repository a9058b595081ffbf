"""Position persistence. One row per (user, market, side)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predbridge.chain.validation import normalize_address
from predbridge.models import Position

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "user_address",
    "market_id",
    "side",
    "shares",
    "avg_price",
    "total_invested",
    "claimed",
    "claimed_amount",
    "claimed_at",
    "claim_tx_hash",
    "updated_at",
]


def _row_to_position(row: tuple) -> Position:
    return Position.model_validate(dict(zip(_COLUMNS, row)))


def upsert_position(conn: DuckDBPyConnection, position: Position) -> None:
    """Insert or replace a position. A stored claimed flag is never cleared."""
    conn.execute(
        f"""
        INSERT INTO positions ({", ".join(_COLUMNS)})
        VALUES ({", ".join("?" for _ in _COLUMNS)})
        ON CONFLICT (user_address, market_id, side) DO UPDATE SET
            shares = excluded.shares,
            avg_price = excluded.avg_price,
            total_invested = excluded.total_invested,
            claimed = claimed OR excluded.claimed,
            claimed_amount = COALESCE(claimed_amount, excluded.claimed_amount),
            claimed_at = COALESCE(claimed_at, excluded.claimed_at),
            claim_tx_hash = COALESCE(claim_tx_hash, excluded.claim_tx_hash),
            updated_at = excluded.updated_at
        """,
        [
            normalize_address(position.user_address),
            position.market_id,
            position.side,
            position.shares,
            position.avg_price,
            position.total_invested,
            position.claimed,
            position.claimed_amount,
            position.claimed_at,
            position.claim_tx_hash,
            position.updated_at,
        ],
    )


def get_position(
    conn: DuckDBPyConnection, user_address: str, market_id: str, side: str
) -> Position | None:
    row = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM positions WHERE user_address = ? AND market_id = ? AND side = ?",
        [normalize_address(user_address), market_id, side],
    ).fetchone()
    return _row_to_position(row) if row else None


def list_positions(
    conn: DuckDBPyConnection,
    market_id: str | None = None,
    user_address: str | None = None,
    side: str | None = None,
) -> list[Position]:
    where = []
    params: list = []
    if market_id:
        where.append("market_id = ?")
        params.append(market_id)
    if user_address:
        where.append("user_address = ?")
        params.append(normalize_address(user_address))
    if side:
        where.append("side = ?")
        params.append(side)
    sql = f"SELECT {', '.join(_COLUMNS)} FROM positions"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY market_id, user_address, side"
    return [_row_to_position(r) for r in conn.execute(sql, params).fetchall()]


def mark_claimed(
    conn: DuckDBPyConnection,
    user_address: str,
    market_id: str,
    side: str,
    amount: float,
    claimed_at: int,
    tx_hash: str | None = None,
) -> bool:
    """Set the claimed flag if not already set. Returns False when it was already claimed."""
    key = [normalize_address(user_address), market_id, side]
    row = conn.execute(
        "SELECT claimed FROM positions WHERE user_address = ? AND market_id = ? AND side = ?", key
    ).fetchone()
    if row is None or row[0]:
        return False
    conn.execute(
        """
        UPDATE positions
        SET claimed = TRUE, claimed_amount = ?, claimed_at = ?, claim_tx_hash = ?, updated_at = ?
        WHERE user_address = ? AND market_id = ? AND side = ?
        """,
        [amount, claimed_at, tx_hash, claimed_at, *key],
    )
    return True
