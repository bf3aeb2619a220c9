"""
In-memory ledgers and role registry

Reference collaborators: enough token behaviour to settle exchanges
(balances, allowances, burns, the cumulative burn counter) and nothing of
the outer token standard (pausing, metadata, events).
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from voting_power_exchange.exchange.addresses import normalize_address
from voting_power_exchange.kernel.errors import (
    AccessControlUnauthorizedAccount,
    InsufficientAllowance,
    InsufficientBalance,
)
from voting_power_exchange.kernel.logging import get_logger
from voting_power_exchange.ledger.interfaces import DEFAULT_ADMIN_ROLE

logger = get_logger(__name__)

_MISSING = object()


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")


class _BalanceBook:
    """
    Balances keyed by checksummed address, with journaled rollback

    Inside transaction() every write first records the prior value of the
    slot it touches, so a rollback costs as much as the block wrote.
    """

    def __init__(self, address: str) -> None:
        self.address = normalize_address(address)
        self.balances: dict[str, int] = {}
        self.total_supply = 0
        self._journal: list[tuple[dict, Any, Any]] | None = None

    def _remember(self, mapping: dict, key: Any) -> None:
        if self._journal is not None:
            self._journal.append((mapping, key, mapping.get(key, _MISSING)))

    def _set_balance(self, account: str, amount: int) -> None:
        self._remember(self.balances, account)
        self.balances[account] = amount

    def _set_total_supply(self, amount: int) -> None:
        self._remember(vars(self), "total_supply")
        self.total_supply = amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize_address(account), 0)

    def mint(self, account: str, amount: int) -> None:
        _check_amount(amount)
        account = normalize_address(account)
        self._set_balance(account, self.balances.get(account, 0) + amount)
        self._set_total_supply(self.total_supply + amount)

    def burn_by_burner(self, account: str, amount: int) -> None:
        """
        Raises:
            InsufficientBalance: If account holds less than amount
        """
        _check_amount(amount)
        account = normalize_address(account)
        balance = self.balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalance(account, balance, amount)
        self._set_balance(account, balance - amount)
        self._set_total_supply(self.total_supply - amount)

    @contextmanager
    def transaction(self) -> Iterator["_BalanceBook"]:
        """Undo every write made inside the block if it raises"""
        outer, self._journal = self._journal, []
        try:
            yield self
        except BaseException:
            journal, self._journal = self._journal, outer
            for mapping, key, prior in reversed(journal):
                if prior is _MISSING:
                    mapping.pop(key, None)
                else:
                    mapping[key] = prior
            logger.debug("Ledger rolled back", ledger=self.address, writes=len(journal))
            raise
        else:
            journal, self._journal = self._journal, outer
            if outer is not None:
                outer.extend(journal)


class InMemoryUtilityLedger(_BalanceBook):
    """Utility token: balances plus ERC-20 style allowances"""

    def __init__(self, address: str) -> None:
        super().__init__(address)
        self.allowances: dict[tuple[str, str], int] = {}

    def approve(self, owner: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        key = (normalize_address(owner), normalize_address(spender))
        self._remember(self.allowances, key)
        self.allowances[key] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((normalize_address(owner), normalize_address(spender)), 0)

    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> None:
        """
        Raises:
            InsufficientAllowance: If spender may not move amount from sender
            InsufficientBalance: If sender holds less than amount
        """
        _check_amount(amount)
        spender = normalize_address(spender)
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)

        allowed = self.allowances.get((sender, spender), 0)
        if allowed < amount:
            raise InsufficientAllowance(sender, spender, allowed, amount)
        balance = self.balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(sender, balance, amount)

        self._remember(self.allowances, (sender, spender))
        self.allowances[(sender, spender)] = allowed - amount
        self._set_balance(sender, balance - amount)
        self._set_balance(recipient, self.balances.get(recipient, 0) + amount)


class InMemoryGovernanceLedger(_BalanceBook):
    """Governance token: voting power balances and the cumulative burn counter"""

    def __init__(self, address: str) -> None:
        super().__init__(address)
        self.burned_amounts: dict[str, int] = {}

    def burned_amount_of_util_token(self, account: str) -> int:
        return self.burned_amounts.get(normalize_address(account), 0)

    def set_burned_amount_of_util_token(self, account: str, amount: int) -> None:
        _check_amount(amount)
        account = normalize_address(account)
        self._remember(self.burned_amounts, account)
        self.burned_amounts[account] = amount


class InMemoryAccessControl:
    """
    Role registry with a single admin role that grants and revokes

    Args:
        admin: Account holding DEFAULT_ADMIN_ROLE from the start
    """

    def __init__(self, admin: str) -> None:
        self.roles: dict[bytes, set[str]] = {DEFAULT_ADMIN_ROLE: {normalize_address(admin)}}

    def has_role(self, role: bytes, account: str) -> bool:
        return normalize_address(account) in self.roles.get(role, set())

    def check_role(self, role: bytes, account: str) -> None:
        """
        Raises:
            AccessControlUnauthorizedAccount: If account lacks role
        """
        if not self.has_role(role, account):
            raise AccessControlUnauthorizedAccount(normalize_address(account), role)

    def grant_role(self, role: bytes, account: str, *, sender: str) -> None:
        self.check_role(DEFAULT_ADMIN_ROLE, sender)
        self.roles.setdefault(role, set()).add(normalize_address(account))
        logger.info("Role granted", role="0x" + role.hex(), account=account, sender=sender)

    def revoke_role(self, role: bytes, account: str, *, sender: str) -> None:
        self.check_role(DEFAULT_ADMIN_ROLE, sender)
        self.roles.get(role, set()).discard(normalize_address(account))
        logger.info("Role revoked", role="0x" + role.hex(), account=account, sender=sender)
