"""
Risk Models for the Allocation Core

CAPM risk/return estimation from monthly return series:
- Beta against a market reference (sample covariance / sample variance)
- Expected market return as the mean of yearly compounded market returns
- CAPM expected annual return per asset
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional, Sequence, Union
from loguru import logger

from capm_allocator.config import settings
from capm_allocator.utils.exceptions import DegenerateInputError
from .models import MarketReference

MONTHS_PER_YEAR = 12
VARIANCE_EPS = 1e-14

ReturnSeries = Union[pd.Series, Sequence[float]]


def _as_series(values: ReturnSeries, name: str) -> pd.Series:
    series = values if isinstance(values, pd.Series) else pd.Series(list(values), dtype=float)
    if series.empty:
        raise DegenerateInputError(f"Return series for '{name}' is empty", entity=name)
    if series.isna().any():
        raise DegenerateInputError(f"Return series for '{name}' contains gaps", entity=name)
    return series.astype(float)


class CAPMEstimator:
    """
    Beta and CAPM expected return estimation.

    Betas are rounded to ``beta_decimals`` and expected returns to
    ``return_decimals``; the expected return is computed from the rounded
    beta so the published table is self-consistent.
    """

    def __init__(
        self,
        risk_free_rate: float = settings.RISK_FREE_RATE,
        beta_decimals: int = settings.BETA_DECIMALS,
        return_decimals: int = settings.RETURN_DECIMALS,
        periods_per_year: int = MONTHS_PER_YEAR
    ):
        self.risk_free_rate = risk_free_rate
        self.beta_decimals = beta_decimals
        self.return_decimals = return_decimals
        self.periods_per_year = periods_per_year

    def calculate_beta(
        self,
        asset_returns: ReturnSeries,
        market_returns: ReturnSeries,
        symbol: str = "asset"
    ) -> float:
        """
        Beta = Cov(r_i, r_m) / Var(r_m) over the full aligned sample.

        Raises:
            DegenerateInputError: misaligned series or zero market variance
        """
        asset = _as_series(asset_returns, symbol).reset_index(drop=True)
        market = _as_series(market_returns, "market").reset_index(drop=True)

        if len(asset) != len(market):
            raise DegenerateInputError(
                f"Return series for '{symbol}' has {len(asset)} points, "
                f"market has {len(market)}",
                entity=symbol
            )
        if len(market) < 2:
            raise DegenerateInputError("At least two observations are required", entity=symbol)

        market_var = market.var()
        if not np.isfinite(market_var) or market_var <= VARIANCE_EPS:
            raise DegenerateInputError(
                "Market return series has zero variance; beta is undefined",
                entity="market"
            )

        covariance = asset.cov(market)
        return float(round(covariance / market_var, self.beta_decimals))

    def expected_market_return(self, market_returns: ReturnSeries) -> float:
        """
        Mean of yearly compounded market returns.

        A DatetimeIndex groups by calendar year and skips years with fewer
        than ``periods_per_year`` observations; otherwise the series is cut
        into consecutive blocks of ``periods_per_year`` and an incomplete
        trailing block is ignored.
        """
        market = _as_series(market_returns, "market")

        if isinstance(market.index, pd.DatetimeIndex):
            grouped = (1 + market).groupby(market.index.year)
            counts = grouped.count()
            complete = counts[counts >= self.periods_per_year].index
            if len(complete) == 0:
                raise DegenerateInputError(
                    f"No calendar year with {self.periods_per_year} observations",
                    entity="market"
                )
            if len(complete) < len(counts):
                partial = [int(y) for y in counts.index if y not in complete]
                logger.debug(f"Partial years skipped for E(r_m): {partial}")
            yearly = grouped.prod().loc[complete] - 1
        else:
            n_years = len(market) // self.periods_per_year
            if n_years == 0:
                raise DegenerateInputError(
                    f"Need at least {self.periods_per_year} observations for a yearly return",
                    entity="market"
                )
            blocks = market.values[: n_years * self.periods_per_year]
            blocks = blocks.reshape(n_years, self.periods_per_year)
            yearly = pd.Series(np.prod(1 + blocks, axis=1) - 1)

        return float(round(yearly.mean(), self.return_decimals))

    def expected_return(self, beta: float, market_return: float) -> float:
        """E(r) = rf + beta * (E(r_m) - rf)"""
        value = self.risk_free_rate + beta * (market_return - self.risk_free_rate)
        return float(round(value, self.return_decimals))

    def market_reference(
        self,
        market_returns: ReturnSeries,
        symbol: str = "MARKET",
        expected_return: Optional[float] = None
    ) -> MarketReference:
        series = _as_series(market_returns, symbol)
        if expected_return is None:
            expected_return = self.expected_market_return(series)
        return MarketReference(
            symbol=symbol,
            returns=tuple(float(v) for v in series.values),
            expected_return=expected_return
        )

    def estimate(
        self,
        asset_returns: pd.DataFrame,
        market_returns: ReturnSeries,
        market_return: Optional[float] = None
    ) -> pd.DataFrame:
        """
        Beta and expected return for every column of ``asset_returns``.

        Args:
            asset_returns: Monthly returns, one column per asset
            market_returns: Monthly market returns aligned with the rows
            market_return: Override for the expected annual market return

        Returns:
            DataFrame indexed by symbol with ``beta`` and ``expected_return``
        """
        market = _as_series(market_returns, "market")
        if market_return is None:
            market_return = self.expected_market_return(market)

        rows: Dict[str, Dict[str, float]] = {}
        for symbol in asset_returns.columns:
            beta = self.calculate_beta(asset_returns[symbol], market, symbol=str(symbol))
            rows[str(symbol)] = {
                "beta": beta,
                "expected_return": self.expected_return(beta, market_return),
            }

        table = pd.DataFrame.from_dict(rows, orient="index", columns=["beta", "expected_return"])
        table.index.name = "symbol"
        logger.info(
            f"Estimated CAPM inputs for {len(table)} assets "
            f"(E(r_m)={market_return:.4f}, rf={self.risk_free_rate:.4f})"
        )
        return table
