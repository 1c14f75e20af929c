"""
Candidate Screener for the Allocation Core

Shrinks the investable universe before allocation with a binary program:
pick at most ``max_selected`` assets with the lowest total beta, never two
assets of an excluded (highly correlated) pair, and always the mandatory
assets (e.g. existing holdings).
"""

from typing import Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from capm_allocator.config import settings
from capm_allocator.utils.exceptions import ConfigurationError
from .constraints import ConstraintRow, ConstraintSet, Operator
from .models import ReductionResult
from .solver import Sense, SolverOptions, solve

ExclusionPair = Tuple[str, str]


def exclusion_row_name(a: str, b: str) -> str:
    return f"exclude:{a}|{b}"


class CandidateReducer:
    """
    Correlation-aware candidate reduction.

    Decision variables are one binary indicator per asset; the objective
    minimizes the sum of selected betas.
    """

    def __init__(
        self,
        max_selected: int = settings.MAX_CANDIDATES,
        min_selected: int = settings.MIN_CANDIDATES,
        solver_options: Optional[SolverOptions] = None
    ):
        if max_selected < 0 or min_selected < 0:
            raise ConfigurationError("Selection limits must not be negative", row="max_selected")
        if min_selected > max_selected:
            raise ConfigurationError(
                f"min_selected {min_selected} exceeds max_selected {max_selected}",
                row="min_selected"
            )
        self.max_selected = max_selected
        self.min_selected = min_selected
        self.solver_options = solver_options or SolverOptions()

    def build_constraints(
        self,
        betas: Mapping[str, float],
        exclusion_pairs: Iterable[ExclusionPair] = (),
        mandatory: Iterable[str] = ()
    ) -> ConstraintSet:
        """Constraint set of the reduction program over ``betas``' symbols."""
        betas = {str(k): float(v) for k, v in dict(betas).items()}
        symbols = tuple(betas)
        known = set(symbols)
        ones = {s: 1.0 for s in symbols}

        rows: List[ConstraintRow] = [
            ConstraintRow("max_selected", ones, Operator.LE, self.max_selected),
            ConstraintRow("min_selected", ones, Operator.GE, self.min_selected),
        ]

        seen = set()
        for a, b in exclusion_pairs:
            for symbol in (a, b):
                if symbol not in known:
                    raise ConfigurationError(
                        f"Exclusion pair ({a}, {b}) names unknown asset '{symbol}'",
                        row=exclusion_row_name(a, b),
                        entity=symbol
                    )
            if a == b:
                raise ConfigurationError(
                    f"Exclusion pair ({a}, {b}) repeats the same asset",
                    row=exclusion_row_name(a, b),
                    entity=a
                )
            key = frozenset((a, b))
            if key in seen:
                continue
            seen.add(key)
            rows.append(ConstraintRow(
                exclusion_row_name(a, b), {a: 1.0, b: 1.0}, Operator.LE, 1.0, entity=a
            ))

        for symbol in dict.fromkeys(mandatory):
            if symbol not in known:
                raise ConfigurationError(
                    f"Mandatory asset '{symbol}' is not in the universe",
                    row=f"mandatory:{symbol}",
                    entity=symbol
                )
            rows.append(ConstraintRow(
                f"mandatory:{symbol}", {symbol: 1.0}, Operator.EQ, 1.0, entity=symbol
            ))

        return ConstraintSet(symbols, tuple(rows))

    def reduce(
        self,
        betas: Mapping[str, float],
        exclusion_pairs: Iterable[ExclusionPair] = (),
        mandatory: Iterable[str] = ()
    ) -> ReductionResult:
        """
        Select the low-risk, mutually uncorrelated candidates.

        Args:
            betas: Beta per asset (market reference excluded)
            exclusion_pairs: Pairs that may not both be selected
            mandatory: Assets that must be selected

        Returns:
            ReductionResult; an empty selection is a valid outcome

        Raises:
            InfeasibleError: mandatory assets conflict with the limits or pairs
        """
        betas = {str(k): float(v) for k, v in dict(betas).items()}
        if not betas:
            return ReductionResult(selected=(), objective=0.0, indicators={})

        constraints = self.build_constraints(betas, exclusion_pairs, mandatory)
        bounds = {s: (0.0, 1.0) for s in constraints.columns}

        result = solve(
            constraints,
            objective=betas,
            sense=Sense.MINIMIZE,
            bounds=bounds,
            options=self.solver_options,
            label="candidate reduction"
        )

        indicators = {s: int(round(result.values[s])) for s in constraints.columns}
        selected = tuple(s for s in constraints.columns if indicators[s] == 1)
        objective = float(sum(betas[s] for s in selected))

        logger.info(
            f"Candidate reduction selected {len(selected)}/{len(indicators)} assets "
            f"(sum beta={objective:.2f}): {', '.join(selected) or '-'}"
        )
        return ReductionResult(selected=selected, objective=objective, indicators=indicators)
