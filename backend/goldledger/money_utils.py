"""
Presentation helpers for monetary and weight values.

Ledger arithmetic keeps full float precision in storage and in service
code; rounding happens only when a value leaves the system (to_dict,
reports, CLI output).
"""
from __future__ import annotations

from typing import Optional

MONEY_PLACES = 2
WEIGHT_PLACES = 4

# Residue below this is treated as zero when comparing balances.
MONEY_EPSILON = 1e-9


def round_money(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), MONEY_PLACES)


def round_weight(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), WEIGHT_PLACES)
