"""
Allocation Pipeline - Main Service

Orchestrates the complete allocation workflow:
1. CAPM beta / expected return estimation
2. Correlation-aware candidate reduction
3. Crisp integer allocation
4. Fuzzy (relaxed) integer allocation

Data flows strictly forward; each step is a one-shot batch solve.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd

from capm_allocator.config import settings
from capm_allocator.utils.logger import logger
from .data_adapter import estimate_assets
from .models import Asset, FuzzySolution, MarketReference, ReductionResult, Solution
from .risk_models import CAPMEstimator
from .screener import CandidateReducer
from .solver import SolverOptions
from .strategies import (
    AllocationConstraints,
    CrispAllocationOptimizer,
    FuzzyAllocationOptimizer,
    HoldingSpec,
    RiskCapForm,
    SectorCapSpec,
    Tolerances,
)


@dataclass
class AllocationRequest:
    """Request for a crisp + fuzzy allocation run"""
    asset_returns: pd.DataFrame            # Monthly returns, one column per asset
    market_returns: pd.Series              # Monthly market returns
    prices: Dict[str, float]
    tolerances: Tolerances
    dividends: Dict[str, float] = field(default_factory=dict)
    sectors: Dict[str, str] = field(default_factory=dict)
    exclusion_pairs: List[Tuple[str, str]] = field(default_factory=list)
    mandatory: List[str] = field(default_factory=list)
    minimum_holdings: HoldingSpec = field(default_factory=dict)

    budget: float = settings.BUDGET
    max_position_fraction: float = settings.MAX_POSITION_FRACTION
    sector_caps: SectorCapSpec = field(default_factory=dict)
    sector_cap_fraction: float = settings.SECTOR_CAP_FRACTION
    min_holding: int = settings.MIN_HOLDING
    risk_cap: float = settings.RISK_CAP_BETA
    risk_cap_form: RiskCapForm = RiskCapForm.ABSOLUTE

    max_candidates: int = settings.MAX_CANDIDATES
    min_candidates: Optional[int] = None    # None selects exactly max_candidates
    market_return: Optional[float] = None   # Override for E(r_m)
    return_floor: Optional[float] = None    # Override for the fuzzy pessimistic bound

    def __post_init__(self):
        if self.min_candidates is None:
            self.min_candidates = self.max_candidates

    def allocation_constraints(self) -> AllocationConstraints:
        return AllocationConstraints(
            budget=self.budget,
            max_position_fraction=self.max_position_fraction,
            sector_caps=self.sector_caps,
            minimum_holdings=self.minimum_holdings,
            sector_cap_fraction=self.sector_cap_fraction,
            min_holding=self.min_holding,
            risk_cap=self.risk_cap,
            risk_cap_form=self.risk_cap_form,
        )


@dataclass
class AllocationResponse:
    """Response from an allocation run"""
    market: MarketReference
    estimates: pd.DataFrame
    reduction: ReductionResult
    candidates: Dict[str, Asset]
    crisp: Solution
    fuzzy: FuzzySolution
    execution_time_ms: float = 0

    def comparison(self) -> pd.DataFrame:
        """Crisp vs fuzzy quantities, invested amounts and returns per candidate."""
        return compare_solutions(self.crisp, self.fuzzy, self.candidates)


class AllocationPipeline:
    """
    Main allocation service.

    Coordinates estimation, candidate reduction and the two integer
    programs for one request.
    """

    def __init__(
        self,
        risk_free_rate: float = settings.RISK_FREE_RATE,
        solver_options: Optional[SolverOptions] = None
    ):
        """
        Initialize the pipeline.

        Args:
            risk_free_rate: Risk-free rate for CAPM
            solver_options: Options shared by every solve
        """
        self.solver_options = solver_options or SolverOptions()
        self.estimator = CAPMEstimator(risk_free_rate=risk_free_rate)
        self.crisp_optimizer = CrispAllocationOptimizer(self.solver_options)
        self.fuzzy_optimizer = FuzzyAllocationOptimizer(self.solver_options, self.crisp_optimizer)

    def run(self, request: AllocationRequest) -> AllocationResponse:
        """
        Execute the full allocation workflow.

        Args:
            request: AllocationRequest with series and parameters

        Returns:
            AllocationResponse with both solutions

        Raises:
            AllocationError subclasses from the failing step
        """
        start_time = time.perf_counter()

        try:
            # Step 1: CAPM estimates
            assets, estimates, market = estimate_assets(
                request.asset_returns,
                request.market_returns,
                request.prices,
                request.dividends,
                request.sectors,
                estimator=self.estimator,
                market_return=request.market_return
            )
            logger.info(f"Estimated {len(estimates)} assets in {_elapsed_ms(start_time):.0f} ms")

            # Step 2: Reduce candidates; pre-owned assets are always kept
            mandatory = list(dict.fromkeys(list(request.mandatory) + list(request.minimum_holdings)))
            reducer = CandidateReducer(
                max_selected=request.max_candidates,
                min_selected=request.min_candidates,
                solver_options=self.solver_options
            )
            reduction = reducer.reduce(
                estimates["beta"].to_dict(),
                request.exclusion_pairs,
                mandatory
            )
            candidates = {s: assets[s] for s in reduction.selected}
            logger.info(f"Reduced to {len(candidates)} candidates at {_elapsed_ms(start_time):.0f} ms")

            # Step 3: Crisp allocation
            constraints = request.allocation_constraints()
            crisp = self.crisp_optimizer.optimize(list(candidates.values()), constraints)
            logger.info(f"Crisp allocation done at {_elapsed_ms(start_time):.0f} ms")

            # Step 4: Fuzzy allocation, pessimistic bound from the crisp optimum
            return_floor = request.return_floor
            if return_floor is None:
                return_floor = crisp.objective
            fuzzy = self.fuzzy_optimizer.optimize(
                list(candidates.values()),
                constraints,
                request.tolerances,
                return_floor=return_floor
            )

        except Exception as e:
            logger.exception(f"Allocation failed: {e}")
            raise

        execution_time = _elapsed_ms(start_time)
        logger.info(
            f"Allocation complete in {execution_time:.0f} ms: "
            f"crisp={crisp.objective:.2f}, fuzzy={fuzzy.objective:.2f} (alpha={fuzzy.alpha:.4f})"
        )
        return AllocationResponse(
            market=market,
            estimates=estimates,
            reduction=reduction,
            candidates=candidates,
            crisp=crisp,
            fuzzy=fuzzy,
            execution_time_ms=execution_time
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def compare_solutions(
    crisp: Solution,
    fuzzy: Solution,
    assets: Mapping[str, Asset],
    unit_returns: Optional[Mapping[str, float]] = None
) -> pd.DataFrame:
    """Side-by-side allocation table for two solutions over ``assets``."""
    rows = []
    for symbol, asset in assets.items():
        unit_return = asset.unit_return if unit_returns is None else unit_returns[symbol]
        crisp_qty = crisp.quantities.get(symbol, 0)
        fuzzy_qty = fuzzy.quantities.get(symbol, 0)
        rows.append({
            "symbol": symbol,
            "beta": asset.beta,
            "unit_return": unit_return,
            "crisp_quantity": crisp_qty,
            "crisp_invested": crisp_qty * asset.price,
            "crisp_return": crisp_qty * unit_return,
            "fuzzy_quantity": fuzzy_qty,
            "fuzzy_invested": fuzzy_qty * asset.price,
            "fuzzy_return": fuzzy_qty * unit_return,
        })
    return pd.DataFrame(rows).set_index("symbol")
