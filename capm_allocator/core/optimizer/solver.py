"""
Mixed-Integer Solver Wrapper

Runs a ConstraintSet through ``scipy.optimize.milp`` (HiGHS) and maps the
solver status onto the allocation exceptions. When HiGHS reports an
infeasible model, a deletion filter finds the rows whose individual removal
restores feasibility so the caller knows which bound to adjust.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
from loguru import logger
from scipy.optimize import Bounds, LinearConstraint, milp

from capm_allocator.config import settings
from capm_allocator.utils.exceptions import InfeasibleError, SolverError, UnboundedError
from .constraints import ConstraintSet

# scipy.optimize.milp status codes
STATUS_OPTIMAL = 0
STATUS_LIMIT = 1
STATUS_INFEASIBLE = 2
STATUS_UNBOUNDED = 3


class Sense(str, Enum):
    MINIMIZE = "min"
    MAXIMIZE = "max"


@dataclass
class SolverOptions:
    """Options handed to HiGHS"""
    time_limit: float = settings.SOLVER_TIME_LIMIT
    mip_rel_gap: float = settings.SOLVER_MIP_REL_GAP
    presolve: bool = True
    diagnose_infeasibility: bool = True

    def as_milp_options(self) -> dict:
        return {
            "time_limit": self.time_limit,
            "mip_rel_gap": self.mip_rel_gap,
            "presolve": self.presolve,
            "disp": False,
        }


@dataclass
class SolverResult:
    """Raw optimal point of one solve"""
    values: Dict[str, float]
    objective: float
    status: int
    message: str = ""
    metadata: Dict[str, float] = field(default_factory=dict)


def solve(
    constraints: ConstraintSet,
    objective: Mapping[str, float],
    sense: Sense = Sense.MAXIMIZE,
    integer_columns: Optional[List[str]] = None,
    bounds: Optional[Mapping[str, Tuple[float, float]]] = None,
    options: Optional[SolverOptions] = None,
    label: str = "model"
) -> SolverResult:
    """
    Solve ``max/min objective . x`` subject to ``constraints``.

    Args:
        constraints: Rows and column ordering
        objective: Coefficient per column (missing columns count as 0)
        sense: Optimization direction
        integer_columns: Columns restricted to integers (default: all)
        bounds: Per-column (lower, upper); default (0, inf)
        options: Solver options
        label: Name used in log messages and errors

    Returns:
        SolverResult with the optimal point

    Raises:
        InfeasibleError, UnboundedError, SolverError
    """
    options = options or SolverOptions()
    result = _run_milp(constraints, objective, sense, integer_columns, bounds, options)

    if result.status == STATUS_OPTIMAL:
        values = dict(zip(constraints.columns, (float(v) for v in result.x)))
        value = float(result.fun)
        if sense == Sense.MAXIMIZE:
            value = -value
        logger.debug(f"{label}: optimal objective {value:.6f}")
        return SolverResult(
            values=values,
            objective=value,
            status=result.status,
            message=str(result.message),
            metadata={"mip_gap": float(getattr(result, "mip_gap", 0.0) or 0.0)}
        )

    if result.status == STATUS_INFEASIBLE:
        conflicting: List[str] = []
        if options.diagnose_infeasibility:
            conflicting = find_conflicting_rows(
                constraints, integer_columns, bounds, options
            )
        first = constraints.row(conflicting[0]) if conflicting else None
        logger.warning(f"{label}: infeasible, conflicting rows {conflicting}")
        raise InfeasibleError(
            message=f"{label} is infeasible"
                    + (f"; dropping any of {conflicting} restores feasibility" if conflicting else ""),
            row=first.name if first else None,
            entity=first.entity if first else None,
            conflicting_rows=conflicting
        )

    if result.status == STATUS_UNBOUNDED:
        logger.warning(f"{label}: unbounded")
        raise UnboundedError(f"{label} is unbounded", row=label)

    logger.error(f"{label}: solver stopped with status {result.status}: {result.message}")
    raise SolverError(f"{label}: {result.message}", row=label, status=result.status)


def find_conflicting_rows(
    constraints: ConstraintSet,
    integer_columns: Optional[List[str]] = None,
    bounds: Optional[Mapping[str, Tuple[float, float]]] = None,
    options: Optional[SolverOptions] = None
) -> List[str]:
    """Rows whose removal alone turns the model feasible, in row order."""
    options = options or SolverOptions()
    conflicting = []
    for name in constraints.names():
        reduced = constraints.without(name)
        result = _run_milp(reduced, {}, Sense.MINIMIZE, integer_columns, bounds, options)
        if result.status == STATUS_OPTIMAL:
            conflicting.append(name)
    return conflicting


def _run_milp(
    constraints: ConstraintSet,
    objective: Mapping[str, float],
    sense: Sense,
    integer_columns: Optional[List[str]],
    bounds: Optional[Mapping[str, Tuple[float, float]]],
    options: SolverOptions
):
    columns = constraints.columns
    c = np.array([float(objective.get(col, 0.0)) for col in columns])
    if sense == Sense.MAXIMIZE:
        c = -c

    integer_set = set(columns if integer_columns is None else integer_columns)
    integrality = np.array([1 if col in integer_set else 0 for col in columns])

    bounds = bounds or {}
    lower = np.array([bounds.get(col, (0.0, np.inf))[0] for col in columns], dtype=float)
    upper = np.array([bounds.get(col, (0.0, np.inf))[1] for col in columns], dtype=float)

    linear = None
    if len(constraints):
        A, lb, ub = constraints.to_arrays()
        linear = LinearConstraint(A, lb, ub)

    return milp(
        c,
        integrality=integrality,
        bounds=Bounds(lower, upper),
        constraints=linear,
        options=options.as_milp_options(),
    )
