"""Typed failures for the market core and their HTTP rendering."""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class MarketError(Exception):
    """Base failure with a structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            "retryable": self.retryable,
            **({"details": self.details} if self.details else {}),
        }


class ValidationError(MarketError):
    """Bad quantity, amount, percentage or timeframe. Nothing was mutated."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    message = "Invalid request"


class InsufficientFunds(MarketError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INSUFFICIENT_FUNDS"
    message = "Insufficient balance"


class InsufficientPosition(MarketError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INSUFFICIENT_POSITION"
    message = "Not enough shares to sell"


class NotFoundError(MarketError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class TransactionConflict(MarketError):
    """Concurrent writers touched the same document; safe to try again."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "TRANSACTION_CONFLICT"
    message = "The data was updated by someone else, please try again"
    retryable = True

    def __init__(self, message: Optional[str] = None, duplicate_key: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.duplicate_key = duplicate_key


class StoreUnavailable(MarketError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "STORE_UNAVAILABLE"
    message = "The store is temporarily unavailable, please try again"
    retryable = True


class SettlementTimeout(MarketError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "SETTLEMENT_TIMEOUT"
    message = "The trade took too long and was not executed, please try again"
    retryable = True


class PartialSettlementInconsistency(MarketError):
    """The asset side committed but a later settlement stage failed.

    Not recovered automatically. Every instance is logged and written to the
    incident table for the reconciliation job.
    """

    error_code = "PARTIAL_SETTLEMENT"
    message = "Trade was only partially settled"

    def __init__(
        self,
        message: Optional[str] = None,
        stage: str = "",
        incident_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.stage = stage
        self.incident_id = incident_id
        self.details.setdefault("stage", stage)
        if incident_id:
            self.details["incident_id"] = incident_id


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketError, market_error_handler)
