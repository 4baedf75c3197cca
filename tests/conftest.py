"""
Shared fixtures: synthetic intraday prices and daily jump tables
"""

import os
import sys
import datetime as dt

import numpy as np
import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from jump_detector import JumpRecord


def linear_walk(n: int = 390, step: float = 1e-4, start: float = 100.0,
                jump_at: int = None, jump_size: float = 0.0) -> np.ndarray:
    """Prices whose log follows a straight line, optionally with one jump"""
    returns = np.full(n - 1, step)
    if jump_at is not None:
        returns[jump_at] = jump_size
    return start * np.exp(np.concatenate(([0.0], np.cumsum(returns))))


def simulated_days(n_days: int, n_obs: int, seed: int = 7, jump_prob: float = 0.1) -> dict:
    """Gaussian log-price paths, one per business day, with occasional jumps"""
    rng = np.random.default_rng(seed)
    start = dt.date(2021, 1, 4)
    prices_by_day = {}
    level = 100.0
    day = start
    for _ in range(n_days):
        while day.weekday() >= 5:
            day += dt.timedelta(days=1)
        sigma = 0.001 * np.exp(rng.normal(0, 0.3))
        returns = rng.normal(0, sigma, n_obs - 1)
        if rng.random() < jump_prob:
            returns[rng.integers(0, n_obs - 1)] += rng.choice([-1, 1]) * 25 * sigma
        path = level * np.exp(np.concatenate(([0.0], np.cumsum(returns))))
        prices_by_day[day] = path
        level = path[-1]
        day += dt.timedelta(days=1)
    return prices_by_day


@pytest.fixture
def flat_day():
    return np.full(390, 101.25)


@pytest.fixture
def jump_days():
    """Three days of linear log-price walk; day two carries a large jump"""
    step = 1e-4
    return [
        (dt.date(2021, 3, 1), linear_walk(step=step)),
        (dt.date(2021, 3, 2), linear_walk(step=step, jump_at=200, jump_size=50 * step)),
        (dt.date(2021, 3, 3), linear_walk(step=step))
    ]


@pytest.fixture
def daily_jump_records():
    """100 days of jump records with a mix of jump and no-jump days"""
    rng = np.random.default_rng(11)
    records = []
    day = dt.date(2020, 1, 1)
    for i in range(100):
        BV = float(rng.uniform(1e-5, 5e-5))
        is_jump = i % 7 == 3
        RV = BV + float(rng.uniform(1e-5, 3e-5)) if is_jump else BV * float(rng.uniform(0.95, 1.05))
        records.append(JumpRecord(
            date=day + dt.timedelta(days=i),
            RV=RV,
            BV=BV,
            QV=BV ** 2,
            jump_statistic=-5.0 if is_jump else 0.5,
            is_jump=is_jump,
            jump_magnitude=RV - BV if is_jump else 0.0,
            continuous_variation=BV if is_jump else RV
        ))
    return records


@pytest.fixture
def synthetic_prices():
    return simulated_days(n_days=60, n_obs=80)
