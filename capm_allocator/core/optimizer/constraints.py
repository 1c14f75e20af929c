"""
Constraint Rows for the Allocation Programs

A ConstraintRow carries its own coefficients, relational operator and
right-hand side, so no positional alignment between separate arrays is
needed. A ConstraintSet fixes one column ordering for all of its rows and
validates it when it is built.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
from loguru import logger

from capm_allocator.utils.exceptions import ConfigurationError

ALPHA_COLUMN = "alpha"


class Operator(str, Enum):
    """Relational operator of a row."""
    LE = "<="
    GE = ">="
    EQ = "="


@dataclass(frozen=True)
class ConstraintRow:
    """Linear row ``coefficients . x (op) rhs``."""
    name: str
    coefficients: Mapping[str, float]
    operator: Operator
    rhs: float
    entity: Optional[str] = None      # Asset, sector or None for portfolio-level rows
    relaxable: bool = True

    def __post_init__(self):
        object.__setattr__(
            self, "coefficients",
            MappingProxyType({k: float(v) for k, v in self.coefficients.items()})
        )
        object.__setattr__(self, "operator", Operator(self.operator))
        object.__setattr__(self, "rhs", float(self.rhs))

    def evaluate(self, values: Mapping[str, float]) -> float:
        return sum(coef * values.get(col, 0.0) for col, coef in self.coefficients.items())

    def violation(self, values: Mapping[str, float]) -> float:
        """Amount by which ``values`` break the row (0 when satisfied)."""
        lhs = self.evaluate(values)
        if self.operator == Operator.LE:
            return max(0.0, lhs - self.rhs)
        if self.operator == Operator.GE:
            return max(0.0, self.rhs - lhs)
        return abs(lhs - self.rhs)

    def relax(self, width: float, column: str = ALPHA_COLUMN) -> List["ConstraintRow"]:
        """
        Rewrite the row so its bound can drift by ``width * alpha``.

        ``<=`` rows become ``a.x - d*alpha <= b`` and ``>=`` rows become
        ``a.x + d*alpha >= b``. An equality is split into one row of each kind.
        """
        if not width > 0:
            raise ConfigurationError(
                f"Tolerance width for row '{self.name}' must be positive, got {width}",
                row=self.name,
                entity=self.entity
            )
        if not self.relaxable:
            raise ConfigurationError(
                f"Row '{self.name}' is crisp and cannot be relaxed",
                row=self.name,
                entity=self.entity
            )
        if column in self.coefficients:
            raise ConfigurationError(
                f"Row '{self.name}' already uses column '{column}'",
                row=self.name,
                entity=column
            )

        def _with(name: str, op: Operator, sign: float) -> ConstraintRow:
            coefficients = dict(self.coefficients)
            coefficients[column] = sign * width
            return ConstraintRow(
                name=name,
                coefficients=coefficients,
                operator=op,
                rhs=self.rhs,
                entity=self.entity,
                relaxable=False
            )

        if self.operator == Operator.LE:
            return [_with(self.name, Operator.LE, -1.0)]
        if self.operator == Operator.GE:
            return [_with(self.name, Operator.GE, 1.0)]
        return [
            _with(f"{self.name}:upper", Operator.LE, -1.0),
            _with(f"{self.name}:lower", Operator.GE, 1.0),
        ]


@dataclass(frozen=True)
class ConstraintSet:
    """Ordered rows sharing one column ordering."""
    columns: Tuple[str, ...]
    rows: Tuple[ConstraintRow, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "rows", tuple(self.rows))

        if len(set(self.columns)) != len(self.columns):
            raise ConfigurationError("Duplicate column in constraint set")

        known = set(self.columns)
        seen = set()
        for row in self.rows:
            if row.name in seen:
                raise ConfigurationError(f"Duplicate row name '{row.name}'", row=row.name)
            seen.add(row.name)
            unknown = [col for col in row.coefficients if col not in known]
            if unknown:
                raise ConfigurationError(
                    f"Row '{row.name}' references unknown column '{unknown[0]}'",
                    row=row.name,
                    entity=unknown[0]
                )

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.rows), len(self.columns)

    def row(self, name: str) -> ConstraintRow:
        for row in self.rows:
            if row.name == name:
                return row
        raise KeyError(name)

    def names(self) -> List[str]:
        return [row.name for row in self.rows]

    def without(self, name: str) -> "ConstraintSet":
        return ConstraintSet(self.columns, tuple(r for r in self.rows if r.name != name))

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Dense matrix plus lower/upper row bounds for ``scipy.optimize.LinearConstraint``.

        Returns:
            (A, lb, ub) with A of shape (rows, columns)
        """
        index = {col: i for i, col in enumerate(self.columns)}
        A = np.zeros(self.shape)
        lb = np.full(len(self.rows), -np.inf)
        ub = np.full(len(self.rows), np.inf)

        for i, row in enumerate(self.rows):
            for col, coef in row.coefficients.items():
                A[i, index[col]] = coef
            if row.operator in (Operator.LE, Operator.EQ):
                ub[i] = row.rhs
            if row.operator in (Operator.GE, Operator.EQ):
                lb[i] = row.rhs

        logger.debug(f"Constraint matrix built: {A.shape[0]} rows x {A.shape[1]} columns")
        return A, lb, ub

    def violations(
        self,
        values: Mapping[str, float],
        tolerance: float = 1e-6
    ) -> Dict[str, float]:
        """Rows broken by more than ``tolerance`` and by how much."""
        out = {}
        for row in self.rows:
            amount = row.violation(values)
            if amount > tolerance:
                out[row.name] = amount
        return out
