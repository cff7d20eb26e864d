"""Accounts router — opening accounts, balances and portfolio."""

from fastapi import APIRouter, Depends

from opinion_market.dependencies import get_exchange
from opinion_market.middleware.auth import get_current_account_id
from opinion_market.schemas.account import AccountOpenRequest, AccountSnapshot, PortfolioResponse
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.post("", response_model=AccountSnapshot, status_code=201)
def open_account(
    req: AccountOpenRequest,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Open the caller's account with the starting balance (idempotent)."""
    return exchange.accounts.open_account(account_id, req.username)


@router.get("/me", response_model=AccountSnapshot)
def get_my_account(
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    return exchange.accounts.get(account_id)


@router.get("/me/portfolio", response_model=PortfolioResponse)
def get_my_portfolio(
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Positions marked at current prices, plus net worth."""
    return exchange.portfolio.get_portfolio(account_id)


@router.get("/{account_id}", response_model=AccountSnapshot)
def get_account(
    account_id: str,
    exchange: Exchange = Depends(get_exchange),
    current_account_id: str = Depends(get_current_account_id),
):
    return exchange.accounts.get(account_id)
