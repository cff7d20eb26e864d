"""Portfolio valuation — balance plus positions marked at current prices."""

from opinion_market.pricing import round2
from opinion_market.schemas.account import PortfolioResponse, PositionValue
from opinion_market.services.account_ledger import AccountLedger
from opinion_market.services.asset_ledger import AssetLedger


class PortfolioService:
    def __init__(self, assets: AssetLedger, accounts: AccountLedger):
        self.assets = assets
        self.accounts = accounts

    def get_portfolio(self, account_id: str) -> PortfolioResponse:
        """Get an account's positions with current prices and unrealized PnL."""
        account = self.accounts.get(account_id)
        prices = self.assets.prices_for(list(account.positions))

        positions = []
        for asset_id, pos in account.positions.items():
            asset = prices.get(asset_id)
            if asset is None:
                continue
            market_value = round2(pos.quantity * asset.current_price)
            positions.append(PositionValue(
                asset_id=asset_id,
                text=asset.text,
                quantity=pos.quantity,
                average_purchase_price=pos.average_purchase_price,
                current_price=asset.current_price,
                market_value=market_value,
                pnl=round2((asset.current_price - pos.average_purchase_price) * pos.quantity),
            ))

        holdings_value = round2(sum(p.market_value for p in positions))
        return PortfolioResponse(
            account_id=account.account_id,
            balance=account.balance,
            holdings_value=holdings_value,
            net_worth=round2(account.balance + holdings_value),
            positions=sorted(positions, key=lambda p: p.market_value, reverse=True),
        )

    def net_worth(self, account_id: str) -> float:
        return self.get_portfolio(account_id).net_worth
