"""Incident log for partially settled operations."""

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market.errors import MarketError, NotFoundError
from opinion_market.models.incident import SettlementIncident
from opinion_market.schemas.admin import IncidentResponse
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import now_ms

logger = logging.getLogger(__name__)


class IncidentLog:
    def __init__(self, store: TransactionalStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    def open(
        self,
        operation: str,
        stage: str,
        account_id: str,
        error: str,
        asset_id: Optional[str] = None,
        bet_id: Optional[str] = None,
        quantity: Optional[int] = None,
        price: Optional[float] = None,
        amount: Optional[float] = None,
    ) -> Optional[str]:
        """Write an incident. Returns its id, or None if even that write failed."""
        incident_id = str(uuid.uuid4())

        def _insert(db: Session) -> None:
            db.add(SettlementIncident(
                id=incident_id,
                operation=operation,
                stage=stage,
                account_id=account_id,
                asset_id=asset_id,
                bet_id=bet_id,
                quantity=quantity,
                price=price,
                amount=amount,
                error=error,
                status="open",
                created_at=self.clock(),
            ))

        try:
            self.store.transaction(_insert, name=f"open incident {incident_id}")
        except MarketError:
            # The caller is already failing loudly; the log line below is the record.
            logger.exception(f"Could not persist incident for {operation} by {account_id} at {stage}")
            return None
        return incident_id

    def list_incidents(self, status: Optional[str] = "open") -> list[IncidentResponse]:
        def _list(db: Session) -> list[IncidentResponse]:
            query = db.query(SettlementIncident)
            if status:
                query = query.filter(SettlementIncident.status == status)
            rows = query.order_by(SettlementIncident.created_at.desc()).all()
            return [IncidentResponse.model_validate(r) for r in rows]

        return self.store.read(_list)

    def resolve(self, incident_id: str) -> IncidentResponse:
        def _resolve(db: Session) -> IncidentResponse:
            incident = db.get(SettlementIncident, incident_id)
            if not incident:
                raise NotFoundError(f"Incident {incident_id} not found")
            incident.status = "resolved"
            incident.resolved_at = self.clock()
            db.flush()
            return IncidentResponse.model_validate(incident)

        return self.store.transaction(_resolve, name=f"resolve incident {incident_id}")
