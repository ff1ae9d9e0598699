# backend/portfolio_tracker/routers/quotes.py
"""
Single-symbol quote endpoint.

Served through the market data gateway, so the quote cache, the request
throttle and provider failover apply. A symbol no provider can price is
a 404.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from portfolio_tracker.dependencies import get_gateway
from portfolio_tracker.middleware import limiter, RATE_LIMIT_MARKET
from portfolio_tracker.schemas.market_data import QuoteResponse
from portfolio_tracker.schemas.validators import validate_symbol
from portfolio_tracker.services.exceptions import NotFoundError
from portfolio_tracker.services.market_data import MarketDataGateway

router = APIRouter(
    prefix="/quote",
    tags=["Market Data"],
)


@router.get("/{symbol}", response_model=QuoteResponse)
@limiter.limit(RATE_LIMIT_MARKET)
def get_quote(
        request: Request,
        symbol: str,
        gateway: Annotated[MarketDataGateway, Depends(get_gateway)],
) -> QuoteResponse:
    try:
        symbol = validate_symbol(symbol)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    quote = gateway.get_quote(symbol)
    if quote is None:
        raise NotFoundError("Quote", symbol, f"No provider has a quote for {symbol}")
    return QuoteResponse.model_validate(quote)
