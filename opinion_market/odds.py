"""Payout odds for portfolio-performance bets."""

from opinion_market.pricing import round2

BASELINE_TIMEFRAME_HOURS = 168
MIN_MULTIPLIER = 1.1
MAX_MULTIPLIER = 10.0


def bet_multiplier(target_percentage: float, timeframe_hours: float) -> float:
    """Risk-based payout multiplier.

    A bigger target move and a shorter timeframe are both riskier:
    10% adds 0.5, 50% adds 2.5; 24h adds ~0.86 relative to a 7 day baseline.
    Clamped to [1.1, 10.0].
    """
    percent_risk = target_percentage / 20
    time_risk = max(0.0, (BASELINE_TIMEFRAME_HOURS - timeframe_hours) / BASELINE_TIMEFRAME_HOURS)
    multiplier = 1.0 + percent_risk + time_risk
    return max(MIN_MULTIPLIER, min(MAX_MULTIPLIER, multiplier))


def potential_payout(stake: float, target_percentage: float, timeframe_hours: float) -> float:
    return round2(stake * bet_multiplier(target_percentage, timeframe_hours))
