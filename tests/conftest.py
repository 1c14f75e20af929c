"""
CAPM Allocator - Test Configuration
Shared fixtures and test configuration.
"""
import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["LOG_TO_FILE"] = "false"

from capm_allocator.core.optimizer import AllocationConstraints, Asset  # noqa: E402


# =========================
# Reference Case Fixtures
# =========================

REFERENCE_PRICES = [162.94, 46.44, 139.50, 101.20, 224.01]
REFERENCE_UNIT_RETURNS = [3.94, 7.65, 14.52, 7.91, 20.19]
REFERENCE_BETAS = [0.71, 0.55, 0.93, 0.84, 0.98]
REFERENCE_SYMBOLS = ["A1", "A2", "A3", "A4", "A5"]


@pytest.fixture
def reference_assets():
    """Five candidates; the first three share the capped sector."""
    sectors = ["core", "core", "core", "other", "other"]
    return [
        Asset(symbol=s, returns=(), beta=b, expected_return=0.0, price=p, sector=sec)
        for s, p, b, sec in zip(REFERENCE_SYMBOLS, REFERENCE_PRICES, REFERENCE_BETAS, sectors)
    ]


@pytest.fixture
def reference_unit_returns():
    """Expected return per unit held."""
    return dict(zip(REFERENCE_SYMBOLS, REFERENCE_UNIT_RETURNS))


@pytest.fixture
def reference_constraints():
    """Budget 10000, 4000 per asset, 5000 on the sector, beta cap 1.0, 22 units of A2."""
    return AllocationConstraints(
        budget=10000.0,
        max_position_fraction=0.4,
        sector_caps={"core": 0.5},
        minimum_holdings={"A2": 22},
        risk_cap=1.0,
    )


@pytest.fixture
def reference_tolerances():
    """Widths for budget, five caps, sector, risk and the return aspiration."""
    return [100, 1000, 1000, 1000, 1000, 1000, 1000, 1000, 3000]


# =========================
# Return Series Fixtures
# =========================

@pytest.fixture
def market_returns():
    """Five years of monthly market returns."""
    rng = np.random.default_rng(7)
    dates = pd.date_range("2019-01-31", periods=60, freq="ME")
    return pd.Series(rng.normal(0.008, 0.04, 60), index=dates, name="INDEX")


@pytest.fixture
def true_betas():
    return {
        "A": 0.6, "B": 0.7, "C": 0.8, "D": 0.9,
        "E": 1.0, "F": 1.1, "G": 1.2, "H": 1.3,
    }


@pytest.fixture
def asset_returns(market_returns, true_betas):
    """Monthly asset returns driven by the market plus small idiosyncratic noise."""
    rng = np.random.default_rng(11)
    data = {
        symbol: beta * market_returns.values + rng.normal(0.0, 0.01, len(market_returns))
        for symbol, beta in true_betas.items()
    }
    return pd.DataFrame(data, index=market_returns.index)


@pytest.fixture
def universe_prices():
    """Prices that all divide 2000 and 4000 so an exact budget is reachable."""
    return {
        "A": 50.0, "B": 20.0, "C": 25.0, "D": 40.0,
        "E": 100.0, "F": 125.0, "G": 200.0, "H": 250.0,
    }
