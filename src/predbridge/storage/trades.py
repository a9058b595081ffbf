"""Trade log (append-only)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predbridge.chain.validation import normalize_address
from predbridge.models import Trade

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "trade_id",
    "market_id",
    "user_address",
    "trade_type",
    "side",
    "shares",
    "price",
    "total_amount",
    "timestamp",
    "tx_hash",
]


def append_trade(conn: DuckDBPyConnection, trade: Trade) -> None:
    """Append one trades row."""
    conn.execute(
        f"INSERT INTO trades ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' for _ in _COLUMNS)})",
        [
            trade.trade_id,
            trade.market_id,
            normalize_address(trade.user_address),
            trade.trade_type,
            trade.side,
            trade.shares,
            trade.price,
            trade.total_amount,
            trade.timestamp,
            trade.tx_hash,
        ],
    )


def list_trades(
    conn: DuckDBPyConnection,
    market_id: str | None = None,
    user_address: str | None = None,
    limit: int | None = None,
) -> list[Trade]:
    """Trades in time order, optionally for one market and/or user."""
    where = []
    params: list = []
    if market_id:
        where.append("market_id = ?")
        params.append(market_id)
    if user_address:
        where.append("user_address = ?")
        params.append(normalize_address(user_address))
    sql = f"SELECT {', '.join(_COLUMNS)} FROM trades"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY timestamp, trade_id"
    if limit:
        sql += f" LIMIT {int(limit)}"
    rows = conn.execute(sql, params).fetchall()
    return [Trade.model_validate(dict(zip(_COLUMNS, r))) for r in rows]
