#!/usr/bin/env python3
"""
Exchange Demonstration - From signed intent to capped voting power

This example walks one holder through the exchange lifecycle:

Key Concepts:
1. The holder signs an EIP-712 intent off-chain; an operator submits it
2. Burns price against a square-root curve, so each unit costs more
3. A request that would cross the cap is partially filled at the exact cost
4. A used nonce can never be replayed, even after a restart

Scenario:
- Operator funds the exchange with utility tokens
- Alice exchanges twice and sees diminishing returns
- Alice asks for far more than the cap allows and is partially filled
- The manager raises the cap; Alice tops up
- A replay of an earlier intent is rejected after a restart

Run:
    python examples/exchange_demo.py
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

from eth_account import Account

from voting_power_exchange import VotingPowerExchange
from voting_power_exchange.exchange.models import ExchangeIntent
from voting_power_exchange.exchange.signing import encode_exchange
from voting_power_exchange.kernel.errors import InvalidNonce, VotingPowerIsHigherThanCap
from voting_power_exchange.kernel.time import TestTimeProvider
from voting_power_exchange.ledger import (
    EXCHANGER_ROLE,
    MANAGER_ROLE,
    InMemoryAccessControl,
    InMemoryGovernanceLedger,
    InMemoryUtilityLedger,
)

TOKEN = 10**18

ADMIN = "0x" + "ad" * 20
OPERATOR = "0x" + "0e" * 20
MANAGER = "0x" + "4a" * 20


def print_section(title: str) -> None:
    """Print section header"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def tokens(amount: int) -> str:
    return f"{amount / TOKEN:,.4f}"


def sign(account, vpx: VotingPowerExchange, amount: int, nonce: int, expiration: int) -> ExchangeIntent:
    """Holder side: sign an intent for this deployment's domain"""
    unsigned = ExchangeIntent(
        requester=account.address,
        amount=amount,
        nonce=nonce.to_bytes(32, "big"),
        expiration=expiration,
    )
    signed = account.sign_message(encode_exchange(unsigned, vpx.domain))
    return unsigned.with_signature(bytes(signed.signature))


def main() -> None:
    """Run exchange demonstration"""

    print_section("Voting Power Exchange Demonstration")

    db_path = Path(tempfile.mkdtemp()) / "exchange.db"
    time_provider = TestTimeProvider(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))
    expiration = time_provider.timestamp() + 3600

    utility = InMemoryUtilityLedger("0x" + "01" * 20)
    governance = InMemoryGovernanceLedger("0x" + "02" * 20)
    roles = InMemoryAccessControl(ADMIN)
    roles.grant_role(EXCHANGER_ROLE, OPERATOR, sender=ADMIN)
    roles.grant_role(MANAGER_ROLE, MANAGER, sender=ADMIN)

    vpx = VotingPowerExchange(db_path, utility, governance, roles, time_provider=time_provider)
    utility.mint(OPERATOR, 1_000_000 * TOKEN)
    utility.approve(OPERATOR, vpx.address, 1_000_000 * TOKEN)

    alice = Account.create()
    print(f"Holder:   {alice.address}")
    print(f"Operator: {OPERATOR}")
    print(f"Cap:      {tokens(vpx.get_voting_power_cap())} voting power")

    print_section("Step 1: Two equal burns, diminishing returns")

    for nonce in (1, 2):
        receipt = vpx.exchange(sign(alice, vpx, 1_000 * TOKEN, nonce, expiration), OPERATOR)
        print(
            f"Burned {tokens(receipt.burn_amount)} → "
            f"{tokens(receipt.granted_power)} voting power"
        )

    print_section("Step 2: Request beyond the cap (partial fill)")

    receipt = vpx.exchange(sign(alice, vpx, 500_000 * TOKEN, 3, expiration), OPERATOR)
    print(f"Requested: {tokens(receipt.quote.requested_amount)}")
    print(f"Burned:    {tokens(receipt.burn_amount)}")
    print(f"Granted:   {tokens(receipt.granted_power)}")
    print(f"Holder now at {tokens(governance.balance_of(alice.address))} voting power")

    try:
        vpx.exchange(sign(alice, vpx, 25 * TOKEN, 4, expiration), OPERATOR)
    except VotingPowerIsHigherThanCap as e:
        print(f"✓ Further exchange rejected: {e}")

    print_section("Step 3: Manager raises the cap")

    vpx.set_voting_power_cap(100 * TOKEN, manager=MANAGER)
    receipt = vpx.exchange(sign(alice, vpx, 5_000 * TOKEN, 5, expiration), OPERATOR)
    print(f"Cap raised to {tokens(vpx.get_voting_power_cap())}")
    print(
        f"Top-up burned {tokens(receipt.burn_amount)} for "
        f"{tokens(receipt.granted_power)} voting power"
    )

    print_section("Step 4: Restart and replay")

    restarted = VotingPowerExchange(db_path, utility, governance, roles, time_provider=time_provider)
    print(f"Rebuilt cap:       {tokens(restarted.get_voting_power_cap())}")
    print(f"Rebuilt history:   {len(restarted.history())} exchanges")

    try:
        restarted.exchange(sign(alice, restarted, 25 * TOKEN, 1, expiration), OPERATOR)
    except InvalidNonce as e:
        print(f"✓ Replay rejected: {e}")

    totals = restarted.exchange_log.totals(alice.address)
    print(f"\nTotal burned:  {tokens(totals['burned'])}")
    print(f"Total granted: {tokens(totals['granted'])}")


if __name__ == "__main__":
    main()
