"""
Contract Registry.

Wire shapes and pattern catalogs shared by every service.

- base: ContractModel, change-set and actor shapes
- correlation: CorrelationContext and its propagation helpers
- registry: ContractRegistry / ContractEntry
- identity, tasks, notifications: per-domain RPC contract maps
- gateway: forwarding event contracts
"""

from modules.fabric.contracts.correlation import (
    CorrelationContext,
    correlation_scope,
    current_correlation,
)
from modules.fabric.contracts.registry import ContractEntry, ContractRegistry

__all__ = [
    "ContractEntry",
    "ContractRegistry",
    "CorrelationContext",
    "correlation_scope",
    "current_correlation",
]
