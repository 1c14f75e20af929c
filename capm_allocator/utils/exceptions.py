"""
CAPM Allocator - Custom Exceptions
Typed failures for estimation, candidate reduction and the allocation solvers
"""
from typing import Optional, Any, Dict, List


class AllocationError(Exception):
    """Base exception for the allocation core."""

    def __init__(
        self,
        message: str = "An error occurred",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# =========================
# Input Exceptions
# =========================

class DegenerateInputError(AllocationError):
    """Return series cannot support the estimation (zero variance, gaps, NaN)."""

    def __init__(self, message: str = "Degenerate input series", entity: Optional[str] = None):
        super().__init__(
            message=message,
            code="DEGENERATE_INPUT",
            details={"entity": entity} if entity else None
        )
        self.entity = entity


class ConfigurationError(AllocationError):
    """Inconsistent constraint layout or invalid tolerance settings."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        row: Optional[str] = None,
        entity: Optional[str] = None
    ):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"row": row, "entity": entity}
        )
        self.row = row
        self.entity = entity


# =========================
# Solver Exceptions
# =========================

class OptimizationError(AllocationError):
    """Solver did not return an optimal solution."""

    def __init__(
        self,
        message: str,
        code: str,
        row: Optional[str] = None,
        entity: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        payload = {"row": row, "entity": entity}
        payload.update(details or {})
        super().__init__(message=message, code=code, details=payload)
        self.row = row
        self.entity = entity


class InfeasibleError(OptimizationError):
    """No point satisfies the constraint set."""

    def __init__(
        self,
        message: str = "Problem is infeasible",
        row: Optional[str] = None,
        entity: Optional[str] = None,
        conflicting_rows: Optional[List[str]] = None
    ):
        self.conflicting_rows = list(conflicting_rows or [])
        super().__init__(
            message=message,
            code="INFEASIBLE",
            row=row,
            entity=entity,
            details={"conflicting_rows": self.conflicting_rows}
        )


class UnboundedError(OptimizationError):
    """Objective has no finite optimum."""

    def __init__(
        self,
        message: str = "Problem is unbounded",
        row: Optional[str] = None,
        entity: Optional[str] = None
    ):
        super().__init__(message=message, code="UNBOUNDED", row=row, entity=entity)


class SolverError(OptimizationError):
    """Solver stopped without a usable answer (limits reached, numerical trouble)."""

    def __init__(
        self,
        message: str = "Solver failure",
        row: Optional[str] = None,
        status: Optional[int] = None
    ):
        super().__init__(message=message, code="SOLVER_FAILURE", row=row, details={"status": status})
        self.status = status
