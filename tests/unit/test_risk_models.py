"""
Unit tests for CAPM estimation
"""

import numpy as np
import pandas as pd
import pytest

from capm_allocator.core.optimizer.risk_models import CAPMEstimator
from capm_allocator.utils.exceptions import DegenerateInputError


class TestCAPMEstimator:
    """Tests for beta and expected return estimation"""

    @pytest.fixture
    def estimator(self):
        return CAPMEstimator(risk_free_rate=0.02)

    def test_market_against_itself_has_unit_beta(self, estimator, market_returns):
        beta = estimator.calculate_beta(market_returns, market_returns)

        assert beta == 1.0

    def test_leveraged_asset_beta(self, estimator, market_returns):
        """Twice the market plus a constant has beta 2."""
        asset = 2 * market_returns + 0.001

        assert estimator.calculate_beta(asset, market_returns) == 2.0

    def test_beta_is_rounded(self, estimator, market_returns):
        rng = np.random.default_rng(3)
        asset = 0.537 * market_returns + rng.normal(0, 0.005, len(market_returns))

        beta = estimator.calculate_beta(asset, market_returns)

        assert beta == round(beta, 2)
        assert beta == pytest.approx(0.537, abs=0.08)

    def test_beta_accepts_plain_sequences(self, estimator):
        market = [0.01, -0.02, 0.03, 0.00, 0.015]
        asset = [0.5 * m for m in market]

        assert estimator.calculate_beta(asset, market) == 0.5

    def test_zero_market_variance_raises(self, estimator):
        market = [0.01] * 24
        asset = list(np.linspace(-0.02, 0.02, 24))

        with pytest.raises(DegenerateInputError) as exc_info:
            estimator.calculate_beta(asset, market, symbol="ABC")
        assert exc_info.value.entity == "market"

    def test_misaligned_series_raise(self, estimator):
        with pytest.raises(DegenerateInputError) as exc_info:
            estimator.calculate_beta([0.01, 0.02, 0.03], [0.01, 0.02], symbol="ABC")
        assert exc_info.value.entity == "ABC"

    def test_gaps_raise(self, estimator):
        with pytest.raises(DegenerateInputError):
            estimator.calculate_beta([0.01, np.nan, 0.03], [0.01, 0.02, 0.03])

    def test_expected_return_endpoints(self, estimator):
        """E(r) equals rf at beta 0 and E(r_m) at beta 1."""
        assert estimator.expected_return(0.0, 0.09) == pytest.approx(0.02)
        assert estimator.expected_return(1.0, 0.09) == pytest.approx(0.09)
        assert estimator.expected_return(1.5, 0.09) == pytest.approx(0.125)

    def test_expected_return_below_rf_for_negative_beta(self, estimator):
        assert estimator.expected_return(-0.5, 0.10) == pytest.approx(-0.02)

    def test_expected_market_return_calendar_years(self, estimator):
        dates = pd.date_range("2020-01-31", periods=24, freq="ME")
        market = pd.Series([0.01] * 12 + [0.02] * 12, index=dates)

        expected = ((1.01 ** 12 - 1) + (1.02 ** 12 - 1)) / 2

        assert estimator.expected_market_return(market) == pytest.approx(round(expected, 4))

    def test_expected_market_return_skips_partial_years(self, estimator):
        """A one-month stub year does not count as a yearly return."""
        dates = pd.date_range("2019-12-31", periods=13, freq="ME")
        market = pd.Series([0.30] + [0.01] * 12, index=dates)

        assert estimator.expected_market_return(market) == pytest.approx(0.1268)

    def test_expected_market_return_needs_a_calendar_year(self, estimator):
        dates = pd.date_range("2020-03-31", periods=12, freq="ME")
        market = pd.Series([0.01] * 12, index=dates)

        with pytest.raises(DegenerateInputError):
            estimator.expected_market_return(market)

    def test_expected_market_return_blocks(self, estimator):
        """Without dates the series is cut into 12-month blocks."""
        market = [0.01] * 24 + [0.5] * 5   # incomplete trailing block ignored

        assert estimator.expected_market_return(market) == pytest.approx(0.1268)

    def test_expected_market_return_needs_a_year(self, estimator):
        with pytest.raises(DegenerateInputError):
            estimator.expected_market_return([0.01] * 11)

    def test_estimate_table(self, estimator, asset_returns, market_returns, true_betas):
        table = estimator.estimate(asset_returns, market_returns)

        assert list(table.columns) == ["beta", "expected_return"]
        assert table.index.name == "symbol"
        assert list(table.index) == list(true_betas)
        for symbol, beta in true_betas.items():
            assert table.at[symbol, "beta"] == pytest.approx(beta, abs=0.15)

    def test_estimate_uses_rounded_beta(self, estimator, asset_returns, market_returns):
        market_return = estimator.expected_market_return(market_returns)
        table = estimator.estimate(asset_returns, market_returns)

        for symbol, row in table.iterrows():
            assert row["expected_return"] == estimator.expected_return(row["beta"], market_return)

    def test_estimate_market_return_override(self, estimator, asset_returns, market_returns):
        table = estimator.estimate(asset_returns, market_returns, market_return=0.02)

        # E(r_m) = rf flattens every asset to the risk-free rate
        assert np.allclose(table["expected_return"], 0.02)

    def test_market_reference(self, estimator, market_returns):
        market = estimator.market_reference(market_returns, symbol="INDEX")

        assert market.symbol == "INDEX"
        assert len(market.returns) == len(market_returns)
        assert market.expected_return == estimator.expected_market_return(market_returns)
