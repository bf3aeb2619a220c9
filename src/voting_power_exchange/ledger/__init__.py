"""
Ledger collaborators - utility ledger, governance ledger, access control

The exchange only talks to these through the protocols in interfaces.py.
memory.py holds reference implementations for tests, the CLI and demos.
"""

from voting_power_exchange.ledger.interfaces import (
    DEFAULT_ADMIN_ROLE,
    EXCHANGER_ROLE,
    MANAGER_ROLE,
    AccessControl,
    GovernanceLedger,
    UtilityLedger,
)
from voting_power_exchange.ledger.memory import (
    InMemoryAccessControl,
    InMemoryGovernanceLedger,
    InMemoryUtilityLedger,
)

__all__ = [
    "DEFAULT_ADMIN_ROLE",
    "EXCHANGER_ROLE",
    "MANAGER_ROLE",
    "AccessControl",
    "GovernanceLedger",
    "UtilityLedger",
    "InMemoryAccessControl",
    "InMemoryGovernanceLedger",
    "InMemoryUtilityLedger",
]
