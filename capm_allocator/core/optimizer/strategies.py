"""
Allocation Strategies

Integer programs that spend a cash budget on whole units of the reduced
candidate set:
- Crisp: maximize expected return under hard budget, concentration,
  sector and beta constraints
- Fuzzy: Zimmermann-style relaxation of the same rows with one shared
  relaxation degree alpha
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from capm_allocator.config import settings
from capm_allocator.utils.exceptions import ConfigurationError, InfeasibleError
from .constraints import ALPHA_COLUMN, ConstraintRow, ConstraintSet, Operator
from .models import Asset, FuzzySolution, Solution, ToleranceInterval
from .solver import Sense, SolverOptions, solve

RETURN_ROW = "expected_return"
ROW_CHECK_TOLERANCE = 1e-6

Tolerances = Union[Sequence[float], Mapping[str, float]]
SectorCapSpec = Union[Mapping[str, Optional[float]], Iterable[str]]
HoldingSpec = Union[Mapping[str, Optional[int]], Iterable[str]]


class RiskCapForm(str, Enum):
    """Linear form of the weighted-average beta cap"""
    ABSOLUTE = "absolute"    # sum q*p*beta <= r_max * B
    RATIO = "ratio"          # sum q*p*(beta - r_max) <= 0


def _with_default(spec, default) -> dict:
    """Mapping with missing values filled in; a bare list of names takes ``default`` for each."""
    if not isinstance(spec, Mapping):
        spec = dict.fromkeys(spec)
    return {key: default if value is None else value for key, value in spec.items()}


@dataclass
class AllocationConstraints:
    """
    Constraints for the integer allocation.

    Sectors and pre-owned assets may be given as bare names (or with a None
    value); they then take ``sector_cap_fraction`` and ``min_holding``.
    """
    budget: float = settings.BUDGET
    max_position_fraction: float = settings.MAX_POSITION_FRACTION
    sector_caps: SectorCapSpec = field(default_factory=dict)       # sector -> fraction of budget
    minimum_holdings: HoldingSpec = field(default_factory=dict)    # symbol -> units already owned
    risk_cap: float = settings.RISK_CAP_BETA                        # max weighted-average beta
    risk_cap_form: RiskCapForm = RiskCapForm.ABSOLUTE
    exact_budget: bool = True
    sector_cap_fraction: float = settings.SECTOR_CAP_FRACTION
    min_holding: int = settings.MIN_HOLDING

    def __post_init__(self):
        self.sector_caps = _with_default(self.sector_caps, self.sector_cap_fraction)
        self.minimum_holdings = _with_default(self.minimum_holdings, self.min_holding)

        if self.budget <= 0:
            raise ConfigurationError(f"Budget must be positive, got {self.budget}", row="budget")
        if not 0 < self.max_position_fraction <= 1:
            raise ConfigurationError(
                f"Concentration cap must be in (0, 1], got {self.max_position_fraction}",
                row="cap"
            )
        for sector, fraction in self.sector_caps.items():
            if not 0 < fraction <= 1:
                raise ConfigurationError(
                    f"Sector cap must be in (0, 1], got {fraction}",
                    row=f"sector:{sector}",
                    entity=sector
                )
        for symbol, units in self.minimum_holdings.items():
            if units < 0:
                raise ConfigurationError(
                    f"Minimum holding must not be negative, got {units}",
                    row=f"min_holding:{symbol}",
                    entity=symbol
                )


def expected_return_coefficients(
    assets: Sequence[Asset],
    unit_returns: Optional[Mapping[str, float]] = None
) -> Dict[str, float]:
    """Per-unit objective coefficient: price * E(r) + dividend unless overridden."""
    if unit_returns is None:
        return {a.symbol: a.unit_return for a in assets}
    missing = [a.symbol for a in assets if a.symbol not in unit_returns]
    if missing:
        raise ConfigurationError(
            f"No expected return given for asset '{missing[0]}'",
            row=RETURN_ROW,
            entity=missing[0]
        )
    return {a.symbol: float(unit_returns[a.symbol]) for a in assets}


def _round_quantities(values: Mapping[str, float], symbols: Sequence[str]) -> Dict[str, int]:
    return {s: int(round(values[s])) for s in symbols}


class CrispAllocationOptimizer:
    """
    Integer LP maximizing expected value appreciation plus dividends.

    All quantities are integer; an exact budget that no integer combination
    meets is reported as infeasible, never approximated.
    """

    def __init__(
        self,
        solver_options: Optional[SolverOptions] = None,
        budget_tolerance: float = settings.BUDGET_TOLERANCE
    ):
        self.solver_options = solver_options or SolverOptions()
        self.budget_tolerance = budget_tolerance

    def build_constraints(
        self,
        assets: Sequence[Asset],
        constraints: AllocationConstraints
    ) -> ConstraintSet:
        """
        Rows of the crisp model, in order: budget, minimum holdings,
        per-asset caps, sector caps, risk cap.
        """
        if not assets:
            raise ConfigurationError("No candidate assets to allocate", row="budget")

        symbols = tuple(a.symbol for a in assets)
        known = set(symbols)
        budget = constraints.budget
        spend = {a.symbol: a.price for a in assets}

        rows: List[ConstraintRow] = [
            ConstraintRow(
                "budget", spend,
                Operator.EQ if constraints.exact_budget else Operator.LE,
                budget
            )
        ]

        for symbol, units in constraints.minimum_holdings.items():
            if symbol not in known:
                raise ConfigurationError(
                    f"Pre-owned asset '{symbol}' is not among the candidates",
                    row=f"min_holding:{symbol}",
                    entity=symbol
                )
            rows.append(ConstraintRow(
                f"min_holding:{symbol}", {symbol: 1.0}, Operator.GE, units,
                entity=symbol, relaxable=False
            ))

        cap = constraints.max_position_fraction * budget
        for asset in assets:
            rows.append(ConstraintRow(
                f"cap:{asset.symbol}", {asset.symbol: asset.price}, Operator.LE, cap,
                entity=asset.symbol
            ))

        for sector, fraction in constraints.sector_caps.items():
            members = {a.symbol: a.price for a in assets if a.sector == sector}
            if not members:
                logger.debug(f"Sector '{sector}' has no candidates, cap skipped")
                continue
            rows.append(ConstraintRow(
                f"sector:{sector}", members, Operator.LE, fraction * budget, entity=sector
            ))

        if constraints.risk_cap_form == RiskCapForm.RATIO:
            rows.append(ConstraintRow(
                "risk",
                {a.symbol: a.price * (a.beta - constraints.risk_cap) for a in assets},
                Operator.LE,
                0.0
            ))
        else:
            rows.append(ConstraintRow(
                "risk",
                {a.symbol: a.price * a.beta for a in assets},
                Operator.LE,
                constraints.risk_cap * budget
            ))

        return ConstraintSet(symbols, tuple(rows))

    def optimize(
        self,
        assets: Sequence[Asset],
        constraints: Optional[AllocationConstraints] = None,
        unit_returns: Optional[Mapping[str, float]] = None
    ) -> Solution:
        """
        Solve the crisp allocation.

        Args:
            assets: Reduced candidate set
            constraints: Budget and caps
            unit_returns: Objective coefficient per asset; defaults to
                ``Asset.unit_return``

        Returns:
            Solution with integer quantities

        Raises:
            InfeasibleError: no integer allocation meets every row
            UnboundedError: objective unbounded
        """
        constraints = constraints or AllocationConstraints()
        problem = self.build_constraints(assets, constraints)
        objective = expected_return_coefficients(assets, unit_returns)

        logger.info(
            f"Crisp allocation: {len(assets)} assets, {len(problem)} rows, "
            f"budget={constraints.budget:.2f}"
        )
        result = solve(
            problem,
            objective=objective,
            sense=Sense.MAXIMIZE,
            options=self.solver_options,
            label="crisp allocation"
        )

        quantities = _round_quantities(result.values, problem.columns)
        self._check_rounded(problem, quantities, constraints)

        invested = float(sum(quantities[a.symbol] * a.price for a in assets))
        value = float(sum(quantities[s] * objective[s] for s in quantities))
        logger.info(f"Crisp allocation solved: return={value:.2f}, invested={invested:.2f}")
        return Solution(quantities=quantities, objective=value, invested=invested)

    def _check_rounded(
        self,
        problem: ConstraintSet,
        quantities: Mapping[str, int],
        constraints: AllocationConstraints
    ) -> None:
        values = {k: float(v) for k, v in quantities.items()}
        budget_row = problem.row("budget")
        if budget_row.violation(values) > self.budget_tolerance:
            wording = "spends the budget of" if constraints.exact_budget else "stays within the budget of"
            raise InfeasibleError(
                f"No integer allocation {wording} {constraints.budget:.2f} "
                f"(closest: {budget_row.evaluate(values):.4f})",
                row="budget",
                conflicting_rows=["budget"]
            )
        broken = problem.without("budget").violations(values, ROW_CHECK_TOLERANCE)
        if broken:
            name = next(iter(broken))
            raise InfeasibleError(
                f"Integer allocation breaks row '{name}' by {broken[name]:.6f}",
                row=name,
                entity=problem.row(name).entity,
                conflicting_rows=list(broken)
            )


class FuzzyAllocationOptimizer:
    """
    Zimmermann relaxation of the crisp allocation.

    Every relaxable row of the crisp model gets a tolerance width d and is
    rewritten with the shared variable alpha in [0, 1]::

        a.x - d*alpha <= b        (<= rows)
        a.x + d*alpha >= b        (>= rows, equalities are split)

    The return aspiration enters as ``c.x + d0*alpha >= floor + d0``.

    The maximized quantity is the satisfaction degree ``1 - alpha``
    (``FuzzySolution.satisfaction``); the program does this by minimizing
    alpha. alpha = 0 means the aspiration is met under the crisp
    bounds, alpha = 1 means the bounds are fully stretched and only the
    pessimistic return floor is guaranteed. Minimum holdings and
    non-negativity stay crisp.
    """

    def __init__(
        self,
        solver_options: Optional[SolverOptions] = None,
        crisp: Optional[CrispAllocationOptimizer] = None
    ):
        self.solver_options = solver_options or SolverOptions()
        self.crisp = crisp or CrispAllocationOptimizer(self.solver_options)

    def relaxable_rows(
        self,
        assets: Sequence[Asset],
        constraints: AllocationConstraints
    ) -> List[str]:
        """Names that take a tolerance width, in the order a sequence is read."""
        problem = self.crisp.build_constraints(assets, constraints)
        return [row.name for row in problem if row.relaxable] + [RETURN_ROW]

    def build_constraints(
        self,
        assets: Sequence[Asset],
        constraints: AllocationConstraints,
        tolerances: Tolerances,
        return_floor: float,
        unit_returns: Optional[Mapping[str, float]] = None
    ) -> Tuple[ConstraintSet, Dict[str, ToleranceInterval]]:
        """Relaxed constraint set plus the tolerance interval of every relaxed row."""
        crisp_problem = self.crisp.build_constraints(assets, constraints)
        names = [row.name for row in crisp_problem if row.relaxable] + [RETURN_ROW]
        widths = self._resolve_widths(names, tolerances)

        rows: List[ConstraintRow] = []
        intervals: Dict[str, ToleranceInterval] = {}
        for row in crisp_problem:
            if not row.relaxable:
                rows.append(row)
                continue
            width = widths[row.name]
            for relaxed in row.relax(width):
                rows.append(relaxed)
                if relaxed.operator == Operator.LE:
                    intervals[relaxed.name] = ToleranceInterval(row.rhs, row.rhs + width, relaxed.name)
                else:
                    intervals[relaxed.name] = ToleranceInterval(row.rhs - width, row.rhs, relaxed.name)

        width = widths[RETURN_ROW]
        aspiration = ConstraintRow(
            RETURN_ROW,
            expected_return_coefficients(assets, unit_returns),
            Operator.GE,
            return_floor + width
        )
        rows.extend(aspiration.relax(width))
        intervals[RETURN_ROW] = ToleranceInterval(return_floor, return_floor + width, RETURN_ROW)

        return ConstraintSet(crisp_problem.columns + (ALPHA_COLUMN,), tuple(rows)), intervals

    def optimize(
        self,
        assets: Sequence[Asset],
        constraints: Optional[AllocationConstraints] = None,
        tolerances: Optional[Tolerances] = None,
        return_floor: Optional[float] = None,
        unit_returns: Optional[Mapping[str, float]] = None
    ) -> FuzzySolution:
        """
        Solve the relaxed allocation.

        Args:
            assets: Reduced candidate set
            constraints: Crisp bounds to relax
            tolerances: Width per relaxable row, either a sequence in
                ``relaxable_rows`` order or a mapping keyed by row name or
                row family (``cap``, ``sector``)
            return_floor: Pessimistic return bound; defaults to the crisp optimum
            unit_returns: Objective coefficient per asset

        Returns:
            FuzzySolution with quantities, alpha and the realized return

        Raises:
            ConfigurationError: missing or non-positive tolerance width
            InfeasibleError: empty even at alpha = 1
        """
        constraints = constraints or AllocationConstraints()
        if tolerances is None:
            raise ConfigurationError("Tolerance widths are required", entity=ALPHA_COLUMN)

        if return_floor is None:
            crisp_solution = self.crisp.optimize(assets, constraints, unit_returns)
            return_floor = crisp_solution.objective
            logger.info(f"Return floor taken from crisp optimum: {return_floor:.2f}")

        problem, intervals = self.build_constraints(
            assets, constraints, tolerances, return_floor, unit_returns
        )
        symbols = [a.symbol for a in assets]
        bounds = {s: (0.0, np.inf) for s in symbols}
        bounds[ALPHA_COLUMN] = (0.0, 1.0)

        logger.info(
            f"Fuzzy allocation: {len(assets)} assets, {len(problem)} rows, "
            f"return floor={return_floor:.2f}"
        )
        try:
            result = solve(
                problem,
                objective={ALPHA_COLUMN: 1.0},
                sense=Sense.MINIMIZE,
                integer_columns=symbols,
                bounds=bounds,
                options=self.solver_options,
                label="fuzzy allocation"
            )
        except InfeasibleError as e:
            raise InfeasibleError(
                f"Fuzzy allocation is infeasible even at full relaxation (alpha = 1); "
                f"conflicting rows: {e.conflicting_rows}",
                row=e.row,
                entity=e.entity or ALPHA_COLUMN,
                conflicting_rows=e.conflicting_rows
            ) from e

        quantities = _round_quantities(result.values, symbols)
        alpha = float(min(1.0, max(0.0, result.values[ALPHA_COLUMN])))
        if alpha < ROW_CHECK_TOLERANCE:
            alpha = 0.0

        objective = expected_return_coefficients(assets, unit_returns)
        realized = float(sum(quantities[s] * objective[s] for s in symbols))
        invested = float(sum(quantities[a.symbol] * a.price for a in assets))

        logger.info(
            f"Fuzzy allocation solved: alpha={alpha:.4f}, satisfaction={1 - alpha:.4f}, "
            f"return={realized:.2f}, invested={invested:.2f}"
        )
        return FuzzySolution(
            quantities=quantities,
            objective=realized,
            invested=invested,
            alpha=alpha,
            return_floor=float(return_floor),
            tolerances=intervals
        )

    @staticmethod
    def _resolve_widths(names: List[str], tolerances: Tolerances) -> Dict[str, float]:
        if isinstance(tolerances, Mapping):
            widths = {}
            for name in names:
                family = name.split(":", 1)[0]
                if name in tolerances:
                    widths[name] = float(tolerances[name])
                elif family in tolerances:
                    widths[name] = float(tolerances[family])
                else:
                    raise ConfigurationError(
                        f"No tolerance width for row '{name}'",
                        row=name,
                        entity=ALPHA_COLUMN
                    )
        else:
            values = list(tolerances)
            if len(values) != len(names):
                raise ConfigurationError(
                    f"Expected {len(names)} tolerance widths ({', '.join(names)}), "
                    f"got {len(values)}",
                    entity=ALPHA_COLUMN
                )
            widths = {name: float(v) for name, v in zip(names, values)}

        for name, width in widths.items():
            if not width > 0:
                raise ConfigurationError(
                    f"Tolerance width for row '{name}' must be positive, got {width}",
                    row=name,
                    entity=ALPHA_COLUMN
                )
        return widths
