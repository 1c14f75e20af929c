"""
Unit tests for the data adapter helpers
"""

import numpy as np
import pandas as pd
import pytest

from capm_allocator.core.optimizer.data_adapter import (
    align_returns,
    average_dividends,
    build_assets,
    estimate_assets,
    exclusion_pairs_from_correlation,
    monthly_returns,
)
from capm_allocator.core.optimizer.risk_models import CAPMEstimator
from capm_allocator.utils.exceptions import DegenerateInputError


class TestMonthlyReturns:
    """Tests for month-end resampling"""

    def test_daily_prices(self):
        dates = pd.date_range("2023-01-01", "2023-03-31", freq="D")
        prices = pd.DataFrame({"X": np.arange(len(dates)) + 100.0}, index=dates)

        returns = monthly_returns(prices)

        # Month-end prices: Jan 130, Feb 158, Mar 189
        assert len(returns) == 2
        assert returns["X"].iloc[0] == pytest.approx(158 / 130 - 1)
        assert returns["X"].iloc[1] == pytest.approx(189 / 158 - 1)

    def test_requires_dates(self):
        with pytest.raises(DegenerateInputError):
            monthly_returns(pd.Series([1.0, 2.0, 3.0]))


class TestAverageDividends:
    """Tests for yearly dividend averaging"""

    @pytest.fixture
    def dividends(self):
        index = pd.to_datetime(["2021-03-15", "2021-09-15", "2022-05-10"])
        return pd.DataFrame({"X": [1.0, 1.0, 3.0], "Y": [0.5, np.nan, 0.5]}, index=index)

    def test_mean_of_yearly_sums(self, dividends):
        averages = average_dividends(dividends)

        assert averages["X"] == pytest.approx(2.5)
        assert averages["Y"] == pytest.approx(0.5)

    def test_last_years_only(self, dividends):
        averages = average_dividends(dividends, years=1)

        assert averages["X"] == pytest.approx(3.0)

    def test_missing_symbols_default_to_zero(self, dividends):
        averages = average_dividends(dividends["X"], symbols=["X", "Z"])

        assert averages["Z"] == 0.0
        assert averages["X"] == pytest.approx(2.5)


class TestAlignment:
    """Tests for aligning asset and market series"""

    def test_inner_join(self, asset_returns, market_returns):
        assets, market = align_returns(asset_returns.iloc[5:], market_returns.iloc[:-5])

        assert len(assets) == len(market) == len(market_returns) - 10
        assert assets.index.equals(market.index)
        assert "__market__" not in assets.columns

    def test_gap_names_asset(self, asset_returns, market_returns):
        broken = asset_returns.copy()
        broken.iloc[3, 2] = np.nan

        with pytest.raises(DegenerateInputError) as exc_info:
            align_returns(broken, market_returns)
        assert exc_info.value.entity == "C"

    def test_too_few_rows(self, asset_returns, market_returns):
        with pytest.raises(DegenerateInputError):
            align_returns(asset_returns.iloc[:2], market_returns)


class TestCorrelationPairs:
    """Tests for correlation-based exclusion pairs"""

    def test_highly_correlated_pair(self):
        rng = np.random.default_rng(5)
        base = rng.normal(0, 0.02, 48)
        returns = pd.DataFrame({
            "A": base,
            "B": 2 * base + rng.normal(0, 0.001, 48),
            "C": rng.normal(0, 0.02, 48),
        })

        assert exclusion_pairs_from_correlation(returns, 0.7) == [("A", "B")]


class TestAssetConstruction:
    """Tests for Asset assembly"""

    def test_build_assets(self, asset_returns, market_returns, universe_prices):
        estimates = CAPMEstimator().estimate(asset_returns, market_returns)

        assets = build_assets(
            asset_returns, estimates, universe_prices,
            dividends={"A": 2.0}, sectors={"A": "finance"}
        )

        asset = assets["A"]
        assert list(assets) == list(asset_returns.columns)
        assert asset.price == 50.0
        assert asset.sector == "finance"
        assert asset.unit_return == pytest.approx(50.0 * asset.expected_return + 2.0)
        assert assets["B"].dividend == 0.0
        assert len(asset.returns) == len(asset_returns)

    def test_missing_price(self, asset_returns, market_returns, universe_prices):
        estimates = CAPMEstimator().estimate(asset_returns, market_returns)
        prices = {k: v for k, v in universe_prices.items() if k != "D"}

        with pytest.raises(DegenerateInputError) as exc_info:
            build_assets(asset_returns, estimates, prices)
        assert exc_info.value.entity == "D"

    def test_non_positive_price(self, asset_returns, market_returns, universe_prices):
        estimates = CAPMEstimator().estimate(asset_returns, market_returns)

        with pytest.raises(DegenerateInputError):
            build_assets(asset_returns, estimates, dict(universe_prices, E=0.0))

    def test_estimate_assets(self, asset_returns, market_returns, universe_prices):
        assets, estimates, market = estimate_assets(asset_returns, market_returns, universe_prices)

        assert set(assets) == set(universe_prices)
        assert market.symbol == "INDEX"
        assert assets["H"].beta == estimates.at["H", "beta"]
        assert market.expected_return == CAPMEstimator().expected_market_return(market_returns)
