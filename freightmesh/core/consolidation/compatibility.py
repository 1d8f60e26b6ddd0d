"""Cargo-type compatibility for co-transport.

Each cargo type carries its own list of co-travellers (FRAGILE lists
ELECTRONICS and CLOTHING, CLOTHING lists only FRAGILE). Lookups always go
through the first type's entry and the table is never symmetrized.
"""

from typing import Dict, FrozenSet, Optional

CARGO_COMPATIBILITY: Dict[str, FrozenSet[str]] = {
    "FOOD": frozenset({"PHARMA", "ELECTRONICS"}),
    "PHARMA": frozenset({"FOOD", "ELECTRONICS"}),
    "ELECTRONICS": frozenset({"FOOD", "PHARMA", "FRAGILE"}),
    "CHEMICALS": frozenset({"INDUSTRIAL"}),
    "INDUSTRIAL": frozenset({"CHEMICALS"}),
    "FRAGILE": frozenset({"ELECTRONICS", "CLOTHING"}),
    "CLOTHING": frozenset({"FRAGILE"}),
}


def are_compatible(type1: Optional[str], type2: Optional[str]) -> bool:
    """Check whether cargo of type2 may travel with cargo of type1.

    Missing types are treated as compatible.
    """
    if not type1 or not type2:
        return True
    first, second = type1.upper(), type2.upper()
    if first == second:
        return True

    allowed = CARGO_COMPATIBILITY.get(first)
    if allowed is None:
        return False
    return second in allowed
