"""
Data Adapter for the Allocation Core

Turns clean in-memory price, dividend and return series into the inputs the
estimator, the reducer and the strategies expect. Fetching and currency
conversion happen upstream; nothing here does I/O.
"""

import pandas as pd
from typing import Dict, List, Mapping, Optional, Tuple, Union
from loguru import logger

from capm_allocator.config import settings
from capm_allocator.utils.exceptions import DegenerateInputError
from .models import Asset, MarketReference
from .risk_models import CAPMEstimator

MIN_OBSERVATIONS = 3

PriceData = Union[pd.Series, pd.DataFrame]


def monthly_returns(prices: PriceData) -> PriceData:
    """
    Month-end simple returns from daily (or monthly) prices.

    Args:
        prices: Prices with a DatetimeIndex, one column per asset

    Returns:
        Monthly returns with the leading empty month dropped
    """
    if not isinstance(prices.index, pd.DatetimeIndex):
        raise DegenerateInputError("Prices need a DatetimeIndex to resample by month")

    month_end = prices.sort_index().resample("ME").last()
    returns = month_end.pct_change().iloc[1:]
    logger.debug(f"Monthly returns: {len(returns)} months from {len(prices)} prices")
    return returns


def average_dividends(
    dividends: PriceData,
    symbols: Optional[List[str]] = None,
    years: Optional[int] = None
) -> Dict[str, float]:
    """
    Mean yearly dividend per asset.

    Payments are summed per calendar year and averaged across the years
    present (or the last ``years`` years). Symbols without payments get 0.
    """
    if isinstance(dividends, pd.Series):
        dividends = dividends.to_frame(name=dividends.name or "dividend")
    if not isinstance(dividends.index, pd.DatetimeIndex):
        raise DegenerateInputError("Dividends need a DatetimeIndex to group by year")

    yearly = dividends.fillna(0.0).groupby(dividends.index.year).sum()
    if years is not None and len(yearly) > years:
        yearly = yearly.iloc[-years:]

    averages = {str(col): float(yearly[col].mean()) for col in yearly.columns}
    for symbol in symbols or []:
        averages.setdefault(symbol, 0.0)
    return averages


def align_returns(
    asset_returns: pd.DataFrame,
    market_returns: pd.Series
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Inner-join asset and market returns on their index.

    Raises:
        DegenerateInputError: too few common rows or gaps left after the join
    """
    joined = asset_returns.join(market_returns.rename("__market__"), how="inner")
    if len(joined) < MIN_OBSERVATIONS:
        raise DegenerateInputError(
            f"Only {len(joined)} aligned observations, need {MIN_OBSERVATIONS}",
            entity="market"
        )
    gaps = joined.columns[joined.isna().any()].tolist()
    if gaps:
        entity = "market" if gaps[0] == "__market__" else str(gaps[0])
        raise DegenerateInputError(f"Aligned returns contain gaps for '{entity}'", entity=entity)

    if len(joined) < max(len(asset_returns), len(market_returns)):
        logger.warning(
            f"Dropped {max(len(asset_returns), len(market_returns)) - len(joined)} "
            f"unaligned observations"
        )
    return joined.drop(columns="__market__"), joined["__market__"]


def exclusion_pairs_from_correlation(
    returns: pd.DataFrame,
    threshold: float = settings.CORRELATION_THRESHOLD
) -> List[Tuple[str, str]]:
    """Every column pair whose absolute correlation exceeds ``threshold``."""
    corr = returns.corr()
    columns = [str(c) for c in corr.columns]
    pairs = []
    for i, a in enumerate(columns):
        for j in range(i + 1, len(columns)):
            if abs(corr.iat[i, j]) > threshold:
                pairs.append((a, columns[j]))
    logger.debug(f"{len(pairs)} asset pairs above correlation {threshold}")
    return pairs


def build_assets(
    asset_returns: pd.DataFrame,
    estimates: pd.DataFrame,
    prices: Mapping[str, float],
    dividends: Optional[Mapping[str, float]] = None,
    sectors: Optional[Mapping[str, str]] = None
) -> Dict[str, Asset]:
    """
    Combine return series, CAPM estimates and market data into Assets.

    Args:
        asset_returns: Monthly returns, one column per asset
        estimates: Output of ``CAPMEstimator.estimate``
        prices: Current price per asset
        dividends: Average dividend per asset (missing means 0)
        sectors: Sector label per asset

    Returns:
        Assets keyed by symbol, in column order
    """
    dividends = dividends or {}
    sectors = sectors or {}
    assets = {}
    for column in asset_returns.columns:
        symbol = str(column)
        if symbol not in prices:
            raise DegenerateInputError(f"No price for asset '{symbol}'", entity=symbol)
        price = float(prices[symbol])
        if price <= 0:
            raise DegenerateInputError(f"Price for '{symbol}' must be positive", entity=symbol)
        assets[symbol] = Asset(
            symbol=symbol,
            returns=tuple(float(v) for v in asset_returns[column].values),
            beta=float(estimates.at[symbol, "beta"]),
            expected_return=float(estimates.at[symbol, "expected_return"]),
            price=price,
            dividend=float(dividends.get(symbol, 0.0)),
            sector=sectors.get(symbol)
        )
    return assets


def estimate_assets(
    asset_returns: pd.DataFrame,
    market_returns: pd.Series,
    prices: Mapping[str, float],
    dividends: Optional[Mapping[str, float]] = None,
    sectors: Optional[Mapping[str, str]] = None,
    estimator: Optional[CAPMEstimator] = None,
    market_return: Optional[float] = None
) -> Tuple[Dict[str, Asset], pd.DataFrame, MarketReference]:
    """Align the series, estimate betas and build the Asset map in one go."""
    estimator = estimator or CAPMEstimator()
    aligned_assets, aligned_market = align_returns(asset_returns, market_returns)
    market = estimator.market_reference(
        aligned_market,
        symbol=str(market_returns.name or "MARKET"),
        expected_return=market_return
    )
    estimates = estimator.estimate(aligned_assets, aligned_market, market.expected_return)
    assets = build_assets(aligned_assets, estimates, prices, dividends, sectors)
    return assets, estimates, market
