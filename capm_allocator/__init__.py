"""
CAPM Allocator
Integer allocation of a cash budget under crisp and fuzzy constraints
"""

__version__ = "1.0.0"
