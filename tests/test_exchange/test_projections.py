"""
Tests for exchange projections: replay guard, cap policy and exchange log
"""

import pytest
from eth_account.signers.local import LocalAccount

from voting_power_exchange.exchange.commands import Exchange, SetVotingPowerCap
from voting_power_exchange.exchange.handlers import ExchangeCommandHandlers
from voting_power_exchange.exchange.projections import CapPolicy, ExchangeLog, ReplayGuard
from voting_power_exchange.exchange.signing import AuthorizationVerifier, ExchangeDomain
from voting_power_exchange.kernel.errors import InvalidNonce, LevelIsLowerThanExisting
from voting_power_exchange.kernel.time import TestTimeProvider

from tests.helpers import OPERATOR, TOKEN, make_nonce, sign_intent

REQUESTER = "0x" + "ab" * 20


@pytest.fixture
def handlers(test_time: TestTimeProvider, verifier: AuthorizationVerifier) -> ExchangeCommandHandlers:
    return ExchangeCommandHandlers(test_time, verifier)


def _exchange_events(handlers: ExchangeCommandHandlers, intent, **state):
    params = {
        "nonce_consumed": False,
        "current_voting_power": 0,
        "current_burned_amount": 0,
        "cap": 99 * TOKEN,
        "holder_version": 0,
    }
    params.update(state)
    return handlers.handle_exchange(Exchange(intent=intent), "cmd", OPERATOR, **params)


# =============================================================================
# ReplayGuard
# =============================================================================


def test_consume_marks_pair_spent() -> None:
    guard = ReplayGuard()
    assert not guard.is_consumed(REQUESTER, make_nonce(1))

    guard.consume(REQUESTER, make_nonce(1))

    assert guard.is_consumed(REQUESTER, make_nonce(1))
    assert guard.consumed_count(REQUESTER) == 1


def test_nonces_are_scoped_per_requester() -> None:
    guard = ReplayGuard()
    guard.consume(REQUESTER, make_nonce(1))

    assert not guard.is_consumed("0x" + "cd" * 20, make_nonce(1))
    assert not guard.is_consumed(REQUESTER, make_nonce(2))


def test_requester_lookup_ignores_checksum_case() -> None:
    guard = ReplayGuard()
    guard.consume(REQUESTER.upper().replace("0X", "0x"), make_nonce(1))
    assert guard.is_consumed(REQUESTER, make_nonce(1))


def test_consume_twice_fails() -> None:
    guard = ReplayGuard()
    guard.consume(REQUESTER, make_nonce(1))

    with pytest.raises(InvalidNonce):
        guard.consume(REQUESTER, make_nonce(1))
    assert guard.consumed_count(REQUESTER) == 1


def test_transaction_rolls_back_on_failure() -> None:
    guard = ReplayGuard()
    guard.consume(REQUESTER, make_nonce(1))

    with pytest.raises(RuntimeError):
        with guard.transaction():
            guard.consume(REQUESTER, make_nonce(2))
            raise RuntimeError("settlement failed")

    assert guard.is_consumed(REQUESTER, make_nonce(1))
    assert not guard.is_consumed(REQUESTER, make_nonce(2))


def test_transaction_keeps_changes_on_success() -> None:
    guard = ReplayGuard()
    with guard.transaction():
        guard.consume(REQUESTER, make_nonce(2))
    assert guard.is_consumed(REQUESTER, make_nonce(2))


def test_replay_guard_rebuilds_from_events(
    handlers: ExchangeCommandHandlers, alice: LocalAccount, domain: ExchangeDomain
) -> None:
    intent = sign_intent(alice, domain, 25 * TOKEN, nonce=9)
    guard = ReplayGuard()

    for event in _exchange_events(handlers, intent):
        guard.apply_event(event)

    assert guard.is_consumed(alice.address, make_nonce(9))


def test_replay_guard_tracks_holder_stream_version(
    handlers: ExchangeCommandHandlers, alice: LocalAccount, domain: ExchangeDomain
) -> None:
    guard = ReplayGuard()
    assert guard.stream_version(alice.address) == 0

    for event in _exchange_events(handlers, sign_intent(alice, domain, 25 * TOKEN, nonce=1)):
        guard.apply_event(event)
    assert guard.stream_version(alice.address) == 2

    events = _exchange_events(
        handlers, sign_intent(alice, domain, 25 * TOKEN, nonce=2), holder_version=2
    )
    for event in events:
        guard.apply_event(event)
    assert guard.stream_version(alice.address.lower()) == 4


def test_nested_guard_transaction_rolls_back_with_outer() -> None:
    guard = ReplayGuard()

    with pytest.raises(RuntimeError):
        with guard.transaction():
            with guard.transaction():
                guard.consume(REQUESTER, make_nonce(1))
            raise RuntimeError("settlement failed")

    assert not guard.is_consumed(REQUESTER, make_nonce(1))


def test_replaying_consumed_nonce_is_idempotent(
    handlers: ExchangeCommandHandlers, alice: LocalAccount, domain: ExchangeDomain
) -> None:
    intent = sign_intent(alice, domain, 25 * TOKEN, nonce=9)
    guard = ReplayGuard()
    guard.consume(alice.address, intent.nonce)

    for event in _exchange_events(handlers, intent):
        guard.apply_event(event)

    assert guard.consumed_count(alice.address) == 1


# =============================================================================
# CapPolicy
# =============================================================================


def test_cap_starts_at_default() -> None:
    assert CapPolicy(99 * TOKEN).get_cap() == 99 * TOKEN


def test_cap_only_increases() -> None:
    policy = CapPolicy(99 * TOKEN)
    policy.set_cap(100 * TOKEN)
    assert policy.get_cap() == 100 * TOKEN

    with pytest.raises(LevelIsLowerThanExisting):
        policy.set_cap(100 * TOKEN)
    with pytest.raises(LevelIsLowerThanExisting):
        policy.set_cap(50 * TOKEN)
    assert policy.get_cap() == 100 * TOKEN


def test_recorded_cap_wins_over_default(handlers: ExchangeCommandHandlers) -> None:
    events = handlers.handle_set_voting_power_cap(
        SetVotingPowerCap(new_cap=120 * TOKEN), "cmd", "manager", current_cap=99 * TOKEN, cap_version=0
    )

    # A deployment restarted with a larger default still honours the log
    policy = CapPolicy(150 * TOKEN)
    for event in events:
        policy.apply_event(event)

    assert policy.get_cap() == 120 * TOKEN
    assert policy.version == 1


def test_cap_policy_ignores_other_events(
    handlers: ExchangeCommandHandlers, alice: LocalAccount, domain: ExchangeDomain
) -> None:
    policy = CapPolicy(99 * TOKEN)
    for event in _exchange_events(handlers, sign_intent(alice, domain, 25 * TOKEN)):
        policy.apply_event(event)
    assert policy.get_cap() == 99 * TOKEN
    assert policy.version == 0


# =============================================================================
# ExchangeLog
# =============================================================================


def test_exchange_log_records_settlements(
    handlers: ExchangeCommandHandlers,
    alice: LocalAccount,
    bob: LocalAccount,
    domain: ExchangeDomain,
) -> None:
    log = ExchangeLog()
    for event in _exchange_events(handlers, sign_intent(alice, domain, 25 * TOKEN, nonce=1)):
        log.apply_event(event)
    for event in _exchange_events(
        handlers,
        sign_intent(alice, domain, 100 * TOKEN, nonce=2),
        current_voting_power=1 * TOKEN,
        current_burned_amount=25 * TOKEN,
    ):
        log.apply_event(event)
    for event in _exchange_events(handlers, sign_intent(bob, domain, 25 * TOKEN)):
        log.apply_event(event)

    assert len(log.history()) == 3
    assert len(log.history(alice.address)) == 2
    assert len(log.history(alice.address.lower())) == 2

    totals = log.totals(alice.address)
    assert totals["exchanges"] == 2
    assert totals["burned"] == 125 * TOKEN
    assert totals["granted"] > 1 * TOKEN


def test_exchange_log_entries_carry_event_ids(
    handlers: ExchangeCommandHandlers, alice: LocalAccount, domain: ExchangeDomain
) -> None:
    log = ExchangeLog()
    events = _exchange_events(handlers, sign_intent(alice, domain, 25 * TOKEN))
    for event in events:
        log.apply_event(event)

    (entry,) = log.history()
    assert entry["event_id"] == events[1].event_id
    assert entry["command_id"] == "cmd"
    assert entry["burn_amount"] == 25 * TOKEN


def test_totals_for_unknown_holder_are_zero() -> None:
    assert ExchangeLog().totals(REQUESTER) == {"exchanges": 0, "burned": 0, "granted": 0}


def test_cap_transaction_restores_previous_cap() -> None:
    policy = CapPolicy(99 * TOKEN)

    with pytest.raises(RuntimeError):
        with policy.transaction():
            policy.set_cap(150 * TOKEN)
            raise RuntimeError("append failed")

    assert policy.get_cap() == 99 * TOKEN
