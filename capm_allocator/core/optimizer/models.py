"""
Value objects shared by the estimator, the candidate reducer and the
allocation strategies.

Everything here is frozen: an Asset is built once per run from the input
series, and every optimizer call returns a fresh Solution.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

from capm_allocator.utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class Asset:
    """Investable asset with its CAPM estimates"""
    symbol: str
    returns: Tuple[float, ...]            # Monthly returns, oldest first
    beta: float
    expected_return: float                # CAPM expected annual return
    price: float                          # Current price, single currency
    dividend: float = 0.0                 # Average historical dividend per unit
    sector: Optional[str] = None

    @property
    def unit_return(self) -> float:
        """Expected yearly gain of holding one unit: appreciation plus dividend."""
        return self.price * self.expected_return + self.dividend


@dataclass(frozen=True)
class MarketReference:
    """Benchmark series used for beta; never investable"""
    symbol: str
    returns: Tuple[float, ...]
    expected_return: float                # Mean of yearly market returns


@dataclass(frozen=True)
class ToleranceInterval:
    """Range over which one relaxed row's right-hand side may move"""
    lower: float
    upper: float
    row: Optional[str] = None

    def __post_init__(self):
        if not self.upper > self.lower:
            raise ConfigurationError(
                f"Tolerance interval for row '{self.row}' collapsed: "
                f"lower {self.lower} is not below upper {self.upper}",
                row=self.row,
                entity="alpha"
            )

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class ReductionResult:
    """Outcome of the candidate reduction program"""
    selected: Tuple[str, ...]
    objective: float                      # Sum of the selected betas
    indicators: Dict[str, int] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.selected)

    @property
    def is_empty(self) -> bool:
        return not self.selected


@dataclass(frozen=True)
class Solution:
    """Integer allocation returned by an optimizer run"""
    quantities: Dict[str, int]
    objective: float                      # Expected return in currency units
    invested: float

    def allocation(self, assets: Mapping[str, Asset]) -> pd.DataFrame:
        """Per-asset breakdown of quantities, invested amounts and returns."""
        rows = []
        for symbol, qty in self.quantities.items():
            asset = assets[symbol]
            rows.append({
                "symbol": symbol,
                "quantity": qty,
                "price": asset.price,
                "invested": qty * asset.price,
                "expected_return": qty * asset.unit_return,
            })
        return pd.DataFrame(rows).set_index("symbol")

    def to_dict(self) -> dict:
        return {
            "quantities": dict(self.quantities),
            "objective": self.objective,
            "invested": self.invested,
        }


@dataclass(frozen=True)
class FuzzySolution(Solution):
    """
    Allocation from the relaxed model.

    ``alpha`` is the shared relaxation degree (0 means every crisp bound held),
    ``satisfaction`` is ``1 - alpha``. ``objective`` is the realized expected
    return recomputed from the quantities, not the solver objective.
    """
    alpha: float = 0.0
    return_floor: float = 0.0
    tolerances: Dict[str, ToleranceInterval] = field(default_factory=dict)

    @property
    def satisfaction(self) -> float:
        return 1.0 - self.alpha

    @property
    def is_crisp(self) -> bool:
        return self.alpha == 0.0

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "alpha": self.alpha,
            "satisfaction": self.satisfaction,
            "return_floor": self.return_floor,
        })
        return data
