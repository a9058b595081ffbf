"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Markets (never physically deleted)
CREATE TABLE IF NOT EXISTS markets (
    market_id           VARCHAR PRIMARY KEY,
    question            VARCHAR NOT NULL,
    description         VARCHAR,
    category            VARCHAR,
    created_at          BIGINT NOT NULL,
    end_time            BIGINT NOT NULL,
    probability         DOUBLE NOT NULL,
    volume              DOUBLE NOT NULL,
    verified            BOOLEAN DEFAULT FALSE,
    status              VARCHAR NOT NULL,
    creator_address     VARCHAR,
    settlement_address  VARCHAR,
    resolution_address  VARCHAR,
    contract_version    VARCHAR,
    resolved_outcome    VARCHAR,
    resolution_source   VARCHAR
);

-- One row per (user, market, side)
CREATE TABLE IF NOT EXISTS positions (
    user_address        VARCHAR NOT NULL,
    market_id           VARCHAR NOT NULL,
    side                VARCHAR NOT NULL,
    shares              DOUBLE NOT NULL,
    avg_price           DOUBLE NOT NULL,
    total_invested      DOUBLE NOT NULL,
    claimed             BOOLEAN DEFAULT FALSE,
    claimed_amount      DOUBLE,
    claimed_at          BIGINT,
    claim_tx_hash       VARCHAR,
    updated_at          BIGINT,
    PRIMARY KEY (user_address, market_id, side)
);

-- Trades (append-only)
CREATE TABLE IF NOT EXISTS trades (
    trade_id            VARCHAR PRIMARY KEY,
    market_id           VARCHAR NOT NULL,
    user_address        VARCHAR NOT NULL,
    trade_type          VARCHAR NOT NULL,
    side                VARCHAR NOT NULL,
    shares              DOUBLE NOT NULL,
    price               DOUBLE NOT NULL,
    total_amount        DOUBLE NOT NULL,
    timestamp           BIGINT NOT NULL,
    tx_hash             VARCHAR
);

-- Resolution records (insert-once per market)
CREATE TABLE IF NOT EXISTS resolutions (
    market_id           VARCHAR PRIMARY KEY,
    outcome             VARCHAR NOT NULL,
    mechanism           VARCHAR NOT NULL,
    rationale           VARCHAR,
    tx_hash             VARCHAR,
    timestamp           BIGINT NOT NULL
);

-- Resolution sub-state (undecided -> deciding -> decided-pending-bridge -> bridged)
CREATE TABLE IF NOT EXISTS resolution_state (
    market_id           VARCHAR PRIMARY KEY,
    stage               VARCHAR NOT NULL,
    outcome             VARCHAR,
    rationale           VARCHAR,
    mechanism           VARCHAR,
    updated_at          BIGINT
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True when another process may be writing (e.g. the CLI while
    the API holds the write lock)."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
