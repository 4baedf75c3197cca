"""
Daily variation estimators from intraday prices

Implements, for a single day's prices P_1..P_T and r_t = ln(P_t) - ln(P_{t-1}):
    - Realized variance      RV = sum_{t=2}^T r_t^2
    - Bipower variation      BV = sum_{t=3}^T |r_{t-1}||r_t|
    - Quadpower variation    QV = delta * sum_{t=5}^T |r_{t-3}||r_{t-2}||r_{t-1}||r_t|

Barndorff-Nielsen, O. E. & Shephard, N. (2006). Econometrics of testing for
jumps in financial economics using bipower variation. Journal of Financial
Econometrics, 4(1), 1-30.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence
import datetime as dt

import numpy as np

from exceptions import DomainError

MIN_OBSERVATIONS = {
    'RV': 2,
    'BV': 3,
    'QV': 5
}


@dataclass(frozen=True)
class DailyVariationRecord:
    """Variation measures for one calendar day"""
    date: dt.date
    RV: float
    BV: float
    QV: float


def log_returns(prices: Sequence[float], min_length: int = 2) -> np.ndarray:
    """
    Intraday log returns of a single day's prices

    Params:
    - prices: sequence of float
        - same-day prices in time order, all strictly positive
    - min_length: int
        - minimum number of prices the caller's estimator needs

    Returns:
    - np.ndarray
        - T - 1 log returns
    """

    prices = np.asarray(prices, dtype=float)

    if prices.ndim != 1:
        raise DomainError(f"Expected a 1-d price sequence, got shape {prices.shape}")
    if len(prices) < min_length:
        raise DomainError(
            f"Need at least {min_length} prices, got {len(prices)}"
        )
    if not np.all(np.isfinite(prices)) or np.any(prices <= 0):
        raise DomainError("Prices must be finite and strictly positive")

    return np.diff(np.log(prices))


def realized_variance(prices: Sequence[float]) -> float:
    """Sum of squared log returns"""
    r = log_returns(prices, MIN_OBSERVATIONS['RV'])
    return float(np.sum(r ** 2))


def bipower_variation(prices: Sequence[float]) -> float:
    """Sum of products of adjacent absolute log returns"""
    abs_r = np.abs(log_returns(prices, MIN_OBSERVATIONS['BV']))
    return float(np.sum(abs_r[:-1] * abs_r[1:]))


def quadpower_variation(prices: Sequence[float], delta: int) -> float:
    """
    Quadpower variation, scaled by the nominal number of observations per day

    Params:
    - prices: sequence of float
        - same-day prices
    - delta: int
        - observations per day (390 for one-minute US equity data)
    """

    if delta <= 0:
        raise DomainError(f"delta must be positive, got {delta}")

    abs_r = np.abs(log_returns(prices, MIN_OBSERVATIONS['QV']))
    products = abs_r[:-3] * abs_r[1:-2] * abs_r[2:-1] * abs_r[3:]
    return float(delta * np.sum(products))


def daily_variation(date: dt.date, prices: Sequence[float], delta: int) -> DailyVariationRecord:
    """RV, BV and QV for a single day"""
    return DailyVariationRecord(
        date=date,
        RV=realized_variance(prices),
        BV=bipower_variation(prices),
        QV=quadpower_variation(prices, delta)
    )


def compute_daily_variation(prices_by_day: Dict[dt.date, Sequence[float]],
                            delta: int,
                            on_short_day: str = 'exclude') -> List[DailyVariationRecord]:
    """
    Apply the variation estimators to every day, in date order

    Params:
    - prices_by_day: dict
        - calendar date -> that day's ordered prices
    - delta: int
        - observations per day
    - on_short_day: str
        - 'exclude' drops days that raise DomainError, 'raise' propagates

    Returns:
    - List[DailyVariationRecord]
    """

    if on_short_day not in ('exclude', 'raise'):
        raise ValueError(f"on_short_day must be 'exclude' or 'raise', got {on_short_day!r}")

    records = []
    excluded = []

    for date in sorted(prices_by_day):
        try:
            records.append(daily_variation(date, prices_by_day[date], delta))
        except DomainError as e:
            if on_short_day == 'raise':
                raise DomainError(f"{date}: {e}") from e
            excluded.append(date)

    if excluded:
        print(f"Warning: excluded {len(excluded)} day(s) with invalid prices "
              f"(first: {excluded[0]})")

    return records
