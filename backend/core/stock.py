"""
Stock vocabulary shared by the ledger, the mutation operations and the routes.

- StockChangeType: the closed set of ledger entry kinds
- AdjustMode: how a manual adjustment interprets its value
- ReduceReason: reasons accepted when an admin reduces stock
- is_low_stock / is_out_of_stock: the classifier used for flags and filters
"""

import enum
from typing import Literal


class StockChangeType(str, enum.Enum):
    INITIAL = "initial"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGE = "damage"
    RESTOCK = "restock"


class AdjustMode(str, enum.Enum):
    RESTOCK = "restock"
    REDUCE = "reduce"
    SET = "set"


ReduceReason = Literal["damage", "adjustment", "return", "other"]

REDUCE_REASONS = ("damage", "adjustment", "return", "other")

DEFAULT_ADJUST_REASON = "Manual stock adjustment"

# Largest value a stock or quantity column holds (signed 32-bit INTEGER).
MAX_STOCK = 2**31 - 1


def change_type_for_reduce(reason: str) -> StockChangeType:
    # 'other' has no ledger kind of its own.
    if reason == "other":
        return StockChangeType.ADJUSTMENT
    return StockChangeType(reason)


def is_low_stock(stock: int, threshold: int) -> bool:
    return stock <= threshold


def is_out_of_stock(stock: int) -> bool:
    return stock == 0
