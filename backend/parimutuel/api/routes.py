"""
API Routes for the Parimutuel Pricing Engine
"""
from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field
from loguru import logger

from ..errors import AppError
from ..models.odds import Outcome
from ..models.pool import MarketFallback, MarketListing, PoolStatus
from ..models.prediction import PositionStatus
from ..services.odds_calculator import calculate_odds
from ..services.order_preview import preview_order
from ..services.pool_sync_service import merge_market_view
from ..services.portfolio import build_portfolio, filter_positions

router = APIRouter(tags=["parimutuel"])


# ============================================================================
# Request/Response Models
# ============================================================================

class ErrorInfo(BaseModel):
    code: int
    type: str
    message: str


class MarketViewResponse(BaseModel):
    """Market with live (or fallback) pricing."""
    market_id: str
    title: str
    subtitle: str
    category: str
    description: str
    resolution: str
    end_date: str
    status: str
    yes_price: int
    no_price: int
    volume: str
    volume_microunits: int
    traders: int
    source: str
    is_stale: bool
    error: Optional[str]


class PoolEntryResponse(BaseModel):
    """Cache entry for a market's stake pool."""
    key: str
    state: str
    data: Optional[dict]
    is_loading: bool
    error: Optional[ErrorInfo]
    request_generation: int
    updated_at: Optional[str]


class OddsResponse(BaseModel):
    market_id: str
    yes_price: int = Field(ge=0, le=100)
    no_price: int = Field(ge=0, le=100)
    is_stale: bool


class OrderPreviewResponse(BaseModel):
    amount: float
    outcome: str
    odds: float
    avg_price: int
    shares: float
    potential_return: float
    profit: float


class PreviewEnvelope(BaseModel):
    """`preview` is null until a positive amount is entered."""
    market_id: str
    preview: Optional[OrderPreviewResponse]
    is_stale: bool


class PositionResponse(BaseModel):
    id: str
    market_id: str
    market: str
    outcome: str
    value: float
    status: str
    result: str


class PortfolioStatsResponse(BaseModel):
    total_value: float
    total_trades: int
    active_positions: int
    closed_positions: int
    won: int
    lost: int
    win_rate: float


class PositionsResponse(BaseModel):
    user_id: str
    state: str
    is_loading: bool
    error: Optional[ErrorInfo]
    positions: List[PositionResponse]
    stats: PortfolioStatsResponse


class AccessResponse(BaseModel):
    address: str
    is_admin: bool


def _http_error(e: AppError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.message)


def _default_fallback(req: Request) -> MarketFallback:
    return MarketFallback(yes_price=req.app.state.settings.fallback_yes_price)


# ============================================================================
# Markets
# ============================================================================

@router.get("/markets", response_model=List[MarketViewResponse])
async def list_markets(
    req: Request,
    status: Optional[PoolStatus] = Query(default=None),
):
    """
    List markets from the read API with odds from their listed stakes.
    Malformed listings are skipped.
    """
    client = req.app.state.chain_client
    symbol = req.app.state.settings.currency_symbol
    try:
        raw_markets = await client.fetch_markets(status)
    except AppError as e:
        logger.error(f"Error listing markets: {e.message}")
        raise _http_error(e)

    views = []
    for item in raw_markets:
        try:
            listing = MarketListing.from_api(item)
        except AppError as e:
            logger.warning(f"Skipping market listing: {e.message}")
            continue
        views.append(merge_market_view(
            listing.market_id,
            listing.pool,
            listing.fallback(req.app.state.settings.fallback_yes_price),
            currency_symbol=symbol,
        ).to_dict())
    return views


@router.get("/markets/{market_id}/pool", response_model=PoolEntryResponse)
async def get_pool(req: Request, market_id: str):
    """
    Current cache entry for a market's pool. Reads never start polling;
    a stale or missing entry triggers a one-shot fetch.
    """
    entry = req.app.state.pool_sync.snapshot(market_id)
    return entry.to_dict(lambda pool: pool.to_dict())


@router.post("/markets/{market_id}/pool/refresh", response_model=PoolEntryResponse)
async def refresh_pool(req: Request, market_id: str):
    """
    Refresh a market's pool, joining any fetch already in flight.
    """
    entry = await req.app.state.pool_sync.refresh(market_id)
    return entry.to_dict(lambda pool: pool.to_dict())


@router.get("/markets/{market_id}/view", response_model=MarketViewResponse)
async def get_market_view(req: Request, market_id: str):
    """
    Market merged with its live snapshot, or fallback values if none yet.
    """
    pool_sync = req.app.state.pool_sync
    pool_sync.snapshot(market_id)
    return pool_sync.market_view(market_id, _default_fallback(req)).to_dict()


@router.get("/markets/{market_id}/odds", response_model=OddsResponse)
async def get_odds(req: Request, market_id: str):
    """
    Implied odds from the current snapshot (50/50 when there is none).
    """
    entry = req.app.state.pool_sync.snapshot(market_id)
    pool = entry.data
    try:
        if pool is not None:
            odds = calculate_odds(pool.option_a_stakes, pool.option_b_stakes)
        else:
            odds = calculate_odds(0, 0)
    except AppError as e:
        raise _http_error(e)

    return {
        'market_id': market_id,
        **odds.to_dict(),
        'is_stale': entry.error is not None or pool is None,
    }


@router.get("/markets/{market_id}/preview", response_model=PreviewEnvelope)
async def get_preview(
    req: Request,
    market_id: str,
    amount: Optional[str] = Query(default=None, description="Stake in display units"),
    outcome: str = Query(default=Outcome.YES.value, description="Yes or No"),
):
    """
    Order preview for a prospective stake. Computed fresh on every call.
    """
    entry = req.app.state.pool_sync.snapshot(market_id)
    pool = entry.data
    stakes_a = pool.option_a_stakes if pool is not None else 0
    stakes_b = pool.option_b_stakes if pool is not None else 0

    try:
        preview = preview_order(amount, outcome, stakes_a, stakes_b)
    except AppError as e:
        raise _http_error(e)

    return {
        'market_id': market_id,
        'preview': preview.to_dict() if preview else None,
        'is_stale': entry.error is not None or pool is None,
    }


# ============================================================================
# Positions
# ============================================================================

def _positions_payload(user_id: str, entry, tab: Optional[PositionStatus], query: str) -> dict:
    portfolio = build_portfolio(entry.data or ())
    if tab == PositionStatus.ACTIVE:
        positions = list(portfolio.active)
    elif tab == PositionStatus.CLOSED:
        positions = list(portfolio.closed)
    else:
        positions = portfolio.positions

    return {
        'user_id': user_id,
        'state': entry.state.value,
        'is_loading': entry.is_loading,
        'error': entry.error.to_dict() if entry.error else None,
        'positions': [p.to_dict() for p in filter_positions(positions, query)],
        'stats': portfolio.stats.to_dict(),
    }


@router.get("/users/{user_id}/positions", response_model=PositionsResponse)
async def get_positions(
    req: Request,
    user_id: str,
    tab: Optional[PositionStatus] = Query(default=None),
    q: str = Query(default=""),
):
    """
    A user's positions, optionally limited to one tab and filtered by search.
    """
    entry = req.app.state.ledger_sync.positions(user_id)
    return _positions_payload(user_id, entry, tab, q)


@router.post("/users/{user_id}/resync", response_model=PositionsResponse)
async def resync_positions(req: Request, user_id: str):
    """
    Re-fetch a user's full record set and replace the cached list.
    """
    entry = await req.app.state.ledger_sync.resync(user_id)
    return _positions_payload(user_id, entry, None, "")


# ============================================================================
# Access
# ============================================================================

@router.get("/access/{address}", response_model=AccessResponse)
async def get_access(req: Request, address: str):
    """
    Capabilities for a wallet address.
    """
    return req.app.state.access_policy.capabilities(address)
