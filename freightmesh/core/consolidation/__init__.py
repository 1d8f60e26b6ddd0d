"""Allocation and Consolidation Engine Package."""

from .compatibility import CARGO_COMPATIBILITY, are_compatible
from .route_allocator import (
    Allocation,
    AllocationResult,
    RouteAllocator,
    plan_allocation,
)
from .proximity_matcher import BackhaulLoad, ProximityMatcher, SynergyMatch
from .opportunity_ledger import (
    HandshakeResult,
    OpportunityLedger,
    next_acceptance_status,
)
from .relay_assigner import (
    MergeResult,
    RelayAssigner,
    RelayAssignment,
    assign_relay,
    rank_by_workload,
)

__all__ = [
    # Cargo compatibility
    "CARGO_COMPATIBILITY",
    "are_compatible",
    # Allocation
    "Allocation",
    "AllocationResult",
    "RouteAllocator",
    "plan_allocation",
    # Proximity
    "BackhaulLoad",
    "ProximityMatcher",
    "SynergyMatch",
    # Opportunities
    "HandshakeResult",
    "OpportunityLedger",
    "next_acceptance_status",
    # Relay
    "MergeResult",
    "RelayAssigner",
    "RelayAssignment",
    "assign_relay",
    "rank_by_workload",
]
