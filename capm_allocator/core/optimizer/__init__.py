"""
Allocation Optimizer Module

Determines the expected-return-maximizing integer allocation of a cash
budget from historical returns:
- CAPM beta and expected return estimation
- Correlation-aware candidate reduction (binary program)
- Crisp integer allocation
- Fuzzy integer allocation with a shared relaxation degree

Main components:
- AllocationPipeline: Runs the whole workflow for one request
- CAPMEstimator: Beta / expected return table
- CandidateReducer: Universe reduction
- CrispAllocationOptimizer / FuzzyAllocationOptimizer: Integer programs
"""

from .constraints import ConstraintRow, ConstraintSet, Operator
from .models import Asset, FuzzySolution, MarketReference, ReductionResult, Solution, ToleranceInterval
from .optimizer import AllocationPipeline, AllocationRequest, AllocationResponse, compare_solutions
from .risk_models import CAPMEstimator
from .screener import CandidateReducer
from .solver import SolverOptions
from .strategies import (
    AllocationConstraints,
    CrispAllocationOptimizer,
    FuzzyAllocationOptimizer,
    RiskCapForm,
)

__all__ = [
    "AllocationPipeline",
    "AllocationRequest",
    "AllocationResponse",
    "compare_solutions",
    "CAPMEstimator",
    "CandidateReducer",
    "CrispAllocationOptimizer",
    "FuzzyAllocationOptimizer",
    "AllocationConstraints",
    "RiskCapForm",
    "SolverOptions",
    "ConstraintRow",
    "ConstraintSet",
    "Operator",
    "Asset",
    "MarketReference",
    "ToleranceInterval",
    "ReductionResult",
    "Solution",
    "FuzzySolution",
]
