"""Reconciliation — offline repair of derived prices from the counters.

Run as a maintenance job, never in the trade path:

    python -m opinion_market.services.reconciliation
"""

import logging

from opinion_market.config import settings
from opinion_market.schemas.admin import IncidentResponse, ReconciliationResult
from opinion_market.services.asset_ledger import AssetLedger
from opinion_market.services.incidents import IncidentLog

logger = logging.getLogger(__name__)


class PriceValidator:
    def __init__(
        self,
        assets: AssetLedger,
        incidents: IncidentLog,
        tolerance: float = settings.PRICE_DRIFT_TOLERANCE,
    ):
        self.assets = assets
        self.incidents = incidents
        self.tolerance = tolerance

    def validate_all_prices(self) -> ReconciliationResult:
        """Recompute every asset's price; rewrite the ones off by more than the tolerance."""
        repaired, validated = self.assets.repair_prices(self.tolerance)
        result = ReconciliationResult(fixed=len(repaired), validated=validated)
        if repaired:
            logger.warning(f"Price validation fixed {result.fixed} asset(s), {result.validated} already correct")
        else:
            logger.info(f"Price validation: all {result.validated} asset(s) correct")
        return result

    def open_incidents(self) -> list[IncidentResponse]:
        return self.incidents.list_incidents(status="open")

    def resolve_incident(self, incident_id: str) -> IncidentResponse:
        return self.incidents.resolve(incident_id)


def main() -> None:
    from opinion_market.database import init_db
    from opinion_market.logging_config import setup_logging
    from opinion_market.services.exchange import build_exchange

    setup_logging()
    init_db()
    exchange = build_exchange()
    result = exchange.validator.validate_all_prices()
    open_incidents = exchange.validator.open_incidents()
    if open_incidents:
        logger.warning(f"{len(open_incidents)} open settlement incident(s) need manual review")
    print(f"fixed={result.fixed} validated={result.validated} open_incidents={len(open_incidents)}")


if __name__ == "__main__":
    main()
