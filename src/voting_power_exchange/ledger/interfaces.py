"""
Collaborator interfaces used by the exchange

The ledgers own balances and the per-holder cumulative burn counter; the
exchange never stores either. Each mutable collaborator exposes
transaction(), a context manager that undoes its own changes when the
block raises, so the facade can settle an exchange all-or-nothing.
"""

from contextlib import AbstractContextManager
from typing import Protocol

from eth_utils import keccak

DEFAULT_ADMIN_ROLE = bytes(32)
EXCHANGER_ROLE = keccak(text="EXCHANGER_ROLE")
MANAGER_ROLE = keccak(text="MANAGER_ROLE")


class UtilityLedger(Protocol):
    """Spendable, transferable token burned to acquire voting power"""

    address: str

    def balance_of(self, account: str) -> int:
        ...

    def mint(self, account: str, amount: int) -> None:
        ...

    def burn_by_burner(self, account: str, amount: int) -> None:
        ...

    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient against spender's allowance"""
        ...

    def transaction(self) -> AbstractContextManager[object]:
        ...


class GovernanceLedger(Protocol):
    """Non-transferable voting power plus the cumulative burn counter"""

    address: str

    def balance_of(self, account: str) -> int:
        ...

    def mint(self, account: str, amount: int) -> None:
        ...

    def burn_by_burner(self, account: str, amount: int) -> None:
        ...

    def burned_amount_of_util_token(self, account: str) -> int:
        ...

    def set_burned_amount_of_util_token(self, account: str, amount: int) -> None:
        ...

    def transaction(self) -> AbstractContextManager[object]:
        ...


class AccessControl(Protocol):
    """Role registry gating exchange() and set_voting_power_cap()"""

    def has_role(self, role: bytes, account: str) -> bool:
        ...
