"""FastAPI app exposing the ledger and the coordinator's actions."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Iterator

from duckdb import DuckDBPyConnection
from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predbridge.api.schemas import (
    ActionResponse,
    BuyRequest,
    ClaimRequest,
    CreateMarketRequest,
    ErrorResponse,
    HealthResponse,
    MarketsListResponse,
    PositionsResponse,
    ResolveRequest,
    SellRequest,
)
from predbridge.config import get_settings
from predbridge.coordinator import ResolutionCoordinator, build_coordinator
from predbridge.ledger.shadow import ShadowLedger
from predbridge.models import ActionResult, Market
from predbridge.storage.db import get_connection, init_schema
from predbridge.storage.markets import get_market
from predbridge.storage.markets import list_markets as storage_list_markets
from predbridge.storage.positions import list_positions

# Set by run_api() so request handlers load the same config as the CLI.
_config_profile: str | None = None
_config_dir: Path | None = None

# error code -> HTTP status; anything unlisted is a 400
_STATUS_BY_CODE = {
    "market_not_found": 404,
    "no_wallet": 401,
    "not_authorized": 403,
    "market_closed": 409,
    "market_not_ended": 409,
    "market_already_resolved": 409,
    "already_claimed": 409,
    "invalid_transition": 409,
    "lifecycle_violation": 409,
    "resolution_pending": 409,
    "insufficient_funds": 402,
    "network_unavailable": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings(_config_profile, _config_dir)
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()
    yield


app = FastAPI(title="predbridge API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def get_conn() -> Iterator[DuckDBPyConnection]:
    settings = get_settings(_config_profile, _config_dir)
    conn = get_connection(settings.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_coordinator(conn: DuckDBPyConnection = Depends(get_conn)) -> ResolutionCoordinator:
    return build_coordinator(get_settings(_config_profile, _config_dir), conn)


def _error_json(code: str, message: str, status_code: int = 404, details: dict | None = None) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code, "details": details or {}},
    )


def _action_response(result: ActionResult) -> ActionResponse | JSONResponse:
    if not result.ok:
        code = result.error_code or "coordinator_error"
        return _error_json(code, result.error or code, _STATUS_BY_CODE.get(code, 400), result.details)
    return ActionResponse(action=result.action, market_id=result.market_id, payload=result.payload)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/markets", response_model=MarketsListResponse)
def markets_list(
    status: str | None = None,
    category: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    conn: DuckDBPyConnection = Depends(get_conn),
) -> MarketsListResponse:
    """List markets with optional status/category filter and limit/offset."""
    all_markets = storage_list_markets(conn, status=status, category=category)
    return MarketsListResponse(markets=all_markets[offset : offset + limit], total=len(all_markets))


@app.post("/markets", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def market_create(body: CreateMarketRequest, coordinator: ResolutionCoordinator = Depends(get_coordinator)):
    return _action_response(
        coordinator.create_market(
            body.question,
            body.end_time,
            description=body.description,
            category=body.category,
            probability=body.probability,
            creator_address=body.creator_address,
            settlement_address=body.settlement_address,
            resolution_address=body.resolution_address,
            contract_version=body.contract_version,
            resolution_source=body.resolution_source,
            deploy=body.deploy,
        )
    )


@app.get("/factory/markets", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def factory_markets(creator: str | None = None, coordinator: ResolutionCoordinator = Depends(get_coordinator)):
    """Markets the factory deployed, optionally for one creator."""
    return _action_response(coordinator.factory_markets(creator))


@app.get("/markets/{market_id}", response_model=Market, responses={404: {"model": ErrorResponse}})
def market_detail(market_id: str, conn: DuckDBPyConnection = Depends(get_conn)):
    market = get_market(conn, market_id)
    if market is None:
        return _error_json("market_not_found", f"Market not found: {market_id}")
    return market


@app.get(
    "/markets/{market_id}/positions",
    response_model=PositionsResponse,
    responses={404: {"model": ErrorResponse}},
)
def market_positions(market_id: str, conn: DuckDBPyConnection = Depends(get_conn)):
    if get_market(conn, market_id) is None:
        return _error_json("market_not_found", f"Market not found: {market_id}")
    summary = ShadowLedger(conn).pool_summary(market_id)
    return PositionsResponse(
        market_id=market_id,
        positions=list_positions(conn, market_id=market_id),
        yes_shares=summary.yes_shares,
        no_shares=summary.no_shares,
        total_pool=summary.total_pool,
    )


@app.get(
    "/markets/{market_id}/resolution",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}},
)
def market_resolution(market_id: str, coordinator: ResolutionCoordinator = Depends(get_coordinator)):
    return _action_response(coordinator.resolution_status(market_id))


@app.post("/markets/{market_id}/buy", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def market_buy(
    market_id: str, body: BuyRequest, coordinator: ResolutionCoordinator = Depends(get_coordinator)
):
    return _action_response(coordinator.buy(market_id, body.side, body.amount, acting_address=body.user_address))


@app.post("/markets/{market_id}/sell", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def market_sell(
    market_id: str, body: SellRequest, coordinator: ResolutionCoordinator = Depends(get_coordinator)
):
    return _action_response(coordinator.sell(market_id, body.side, body.shares, acting_address=body.user_address))


@app.post("/markets/{market_id}/resolve", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def market_resolve(
    market_id: str, body: ResolveRequest, coordinator: ResolutionCoordinator = Depends(get_coordinator)
):
    if body.mechanism == "ai":
        result = coordinator.resolve_with_ai(market_id, acting_address=body.user_address)
    elif body.mechanism == "bridge":
        result = coordinator.bridge_pending(market_id, acting_address=body.user_address)
    else:
        if body.outcome is None:
            return _error_json("invalid_input", "outcome is required for manual resolution", 400)
        result = coordinator.resolve_manual(market_id, body.outcome, acting_address=body.user_address)
    return _action_response(result)


@app.post("/markets/{market_id}/claim", response_model=ActionResponse, responses={400: {"model": ErrorResponse}})
def market_claim(
    market_id: str,
    body: ClaimRequest | None = None,
    coordinator: ResolutionCoordinator = Depends(get_coordinator),
):
    user = body.user_address if body else None
    return _action_response(coordinator.claim(market_id, acting_address=user))


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
    config_dir: Path | None = None,
) -> None:
    global _config_profile, _config_dir
    _config_profile = profile
    _config_dir = config_dir
    import uvicorn

    uvicorn.run("predbridge.api.main:app", host=host, port=port, reload=False)
