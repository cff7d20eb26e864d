"""Per-client rate limiting for the trading endpoints (limit set by TRADE_RATE_LIMIT)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
