#!/usr/bin/env python3
"""
Reference Allocation Runner

Solves the five-asset reference case with the crisp and the fuzzy model and
prints both allocations side by side.

Usage:
    python scripts/run_example.py

    # Or with custom settings:
    python scripts/run_example.py --budget 12000 --return-tolerance 2000
"""
import argparse
import sys

from loguru import logger

from capm_allocator.core.optimizer import (
    AllocationConstraints,
    Asset,
    CrispAllocationOptimizer,
    FuzzyAllocationOptimizer,
    compare_solutions,
)
from capm_allocator.utils.exceptions import AllocationError


# Configure logger
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    level="INFO"
)


# symbol, price, expected return per unit, beta, sector
REFERENCE_ASSETS = [
    ("ALV", 162.94, 3.94, 0.71, "finance"),
    ("DTE", 46.44, 7.65, 0.55, "finance"),
    ("MUV2", 139.50, 14.52, 0.93, "finance"),
    ("SIE", 101.20, 7.91, 0.84, "industry"),
    ("SAP", 224.01, 20.19, 0.98, "software"),
]


def build_reference_case():
    """Assets and per-unit returns of the reference case."""
    assets = [
        Asset(symbol=s, returns=(), beta=b, expected_return=0.0, price=p, sector=sec)
        for s, p, _, b, sec in REFERENCE_ASSETS
    ]
    unit_returns = {s: r for s, _, r, _, _ in REFERENCE_ASSETS}
    return assets, unit_returns


def main() -> int:
    parser = argparse.ArgumentParser(description="Crisp vs fuzzy integer allocation")
    parser.add_argument("--budget", type=float, default=10000.0)
    parser.add_argument("--max-position", type=float, default=0.4, help="Per-asset cap as budget fraction")
    parser.add_argument("--sector-cap", type=float, default=0.5, help="Cap on the 'finance' sector")
    parser.add_argument("--risk-cap", type=float, default=1.0, help="Max weighted-average beta")
    parser.add_argument("--min-holding", type=int, default=22, help="Units already held of DTE")
    parser.add_argument("--budget-tolerance", type=float, default=100.0)
    parser.add_argument("--tolerance", type=float, default=1000.0, help="Width for caps and risk rows")
    parser.add_argument("--return-tolerance", type=float, default=3000.0)
    args = parser.parse_args()

    assets, unit_returns = build_reference_case()
    constraints = AllocationConstraints(
        budget=args.budget,
        max_position_fraction=args.max_position,
        sector_caps={"finance": args.sector_cap},
        minimum_holdings={"DTE": args.min_holding},
        risk_cap=args.risk_cap,
    )
    tolerances = {
        "budget": args.budget_tolerance,
        "cap": args.tolerance,
        "sector": args.tolerance,
        "risk": args.tolerance,
        "expected_return": args.return_tolerance,
    }

    crisp_optimizer = CrispAllocationOptimizer()
    fuzzy_optimizer = FuzzyAllocationOptimizer(crisp=crisp_optimizer)

    try:
        crisp = crisp_optimizer.optimize(assets, constraints, unit_returns)
        fuzzy = fuzzy_optimizer.optimize(
            assets, constraints, tolerances,
            return_floor=crisp.objective,
            unit_returns=unit_returns
        )
    except AllocationError as e:
        logger.error(f"{e.code}: {e.message} {e.details}")
        return 1

    table = compare_solutions(crisp, fuzzy, {a.symbol: a for a in assets}, unit_returns)
    print(table.to_string(float_format=lambda v: f"{v:,.2f}"))
    print()
    print(f"Crisp return: {crisp.objective:,.2f}  invested: {crisp.invested:,.2f}")
    print(
        f"Fuzzy return: {fuzzy.objective:,.2f}  invested: {fuzzy.invested:,.2f}  "
        f"alpha: {fuzzy.alpha:.4f}  satisfaction: {fuzzy.satisfaction:.4f}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
