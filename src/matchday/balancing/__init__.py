"""Team balancing strategies."""

from .service import (
    STRATEGIES,
    BalanceContext,
    BalanceMethod,
    BalanceResult,
    balance,
    split_sizes,
)

__all__ = [
    "STRATEGIES",
    "BalanceContext",
    "BalanceMethod",
    "BalanceResult",
    "balance",
    "split_sizes",
]
