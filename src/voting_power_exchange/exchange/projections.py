"""
Exchange Module Projections - state rebuilt from the event log

ReplayGuard: consumed (requester, nonce) pairs
CapPolicy: current voting power cap
ExchangeLog: settled exchanges for audit queries

ReplayGuard and CapPolicy are also the single writers of their state during
a request; the facade rebuilds both from the event store on start-up and
catches them up with events written by other instances before every write.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from voting_power_exchange.exchange.addresses import normalize_address, to_bytes32
from voting_power_exchange.exchange.events import (
    HOLDER_STREAM_TYPE,
    NonceConsumed,
    VotingPowerCapSet,
    VotingPowerReceived,
    holder_stream_id,
)
from voting_power_exchange.exchange.invariants import validate_cap_increase
from voting_power_exchange.kernel.errors import InvalidNonce
from voting_power_exchange.kernel.events import Event
from voting_power_exchange.kernel.metrics import to_tokens, voting_power_cap_tokens


class ReplayGuard:
    """
    Per-requester set of consumed nonces

    Grows monotonically. The only way an entry disappears is the rollback
    of the unit of work that added it. Also tracks the last applied
    version of every holder stream, which is the expected version of the
    holder's next append.
    """

    def __init__(self) -> None:
        self.consumed: dict[str, set[bytes]] = {}
        self.stream_versions: dict[str, int] = {}
        self._journal: list[tuple[str, bytes]] | None = None

    def is_consumed(self, requester: str, nonce: bytes) -> bool:
        return nonce in self.consumed.get(normalize_address(requester), set())

    def consume(self, requester: str, nonce: bytes) -> None:
        """
        Mark (requester, nonce) as spent

        Raises:
            InvalidNonce: If the pair was already spent
        """
        requester = normalize_address(requester)
        nonces = self.consumed.setdefault(requester, set())
        if nonce in nonces:
            raise InvalidNonce(requester, nonce)
        nonces.add(nonce)
        if self._journal is not None:
            self._journal.append((requester, nonce))

    def consumed_count(self, requester: str) -> int:
        return len(self.consumed.get(normalize_address(requester), set()))

    def stream_version(self, requester: str) -> int:
        return self.stream_versions.get(holder_stream_id(normalize_address(requester)), 0)

    @contextmanager
    def transaction(self) -> Iterator["ReplayGuard"]:
        """Undo every consumption made inside the block if it raises"""
        outer, self._journal = self._journal, []
        try:
            yield self
        except BaseException:
            journal, self._journal = self._journal, outer
            for requester, nonce in reversed(journal):
                self.consumed[requester].discard(nonce)
            raise
        else:
            journal, self._journal = self._journal, outer
            if outer is not None:
                outer.extend(journal)

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Replaying NonceConsumed for a pair already held is a no-op, since
        the facade consumes before it appends.
        """
        if event.stream_type == HOLDER_STREAM_TYPE:
            self.stream_versions[event.stream_id] = max(
                event.version, self.stream_versions.get(event.stream_id, 0)
            )
        if event.event_type == "NonceConsumed":
            payload = event.payload_as(NonceConsumed)
            self.consumed.setdefault(payload.requester, set()).add(
                to_bytes32(payload.nonce)
            )


class CapPolicy:
    """
    The global per-holder voting power ceiling

    Non-decreasing over time: every update must be strictly greater than
    the value it replaces. `version` is the last applied version of the
    cap stream.
    """

    def __init__(self, default_cap: int) -> None:
        self.voting_power_cap = default_cap
        self.version = 0
        voting_power_cap_tokens.set(to_tokens(default_cap))

    def get_cap(self) -> int:
        return self.voting_power_cap

    def set_cap(self, new_cap: int) -> None:
        """
        Raises:
            LevelIsLowerThanExisting: If new_cap <= current cap
        """
        validate_cap_increase(new_cap, self.voting_power_cap)
        self.voting_power_cap = new_cap
        voting_power_cap_tokens.set(to_tokens(new_cap))

    @contextmanager
    def transaction(self) -> Iterator["CapPolicy"]:
        """Restore the previous cap if the block raises"""
        previous = self.voting_power_cap
        try:
            yield self
        except BaseException:
            self.voting_power_cap = previous
            voting_power_cap_tokens.set(to_tokens(previous))
            raise

    def apply_event(self, event: Event) -> None:
        """
        Recorded cap updates win over the configured default, even if the
        default was later changed to a higher value.
        """
        if event.event_type == "VotingPowerCapSet":
            payload = event.payload_as(VotingPowerCapSet)
            self.voting_power_cap = payload.new_cap
            self.version = event.version
            voting_power_cap_tokens.set(to_tokens(payload.new_cap))


class ExchangeLog:
    """
    Audit log of settled exchanges

    Built from events: VotingPowerReceived
    """

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def apply_event(self, event: Event) -> None:
        if event.event_type == "VotingPowerReceived":
            payload = event.payload_as(VotingPowerReceived)
            entry = payload.model_dump()
            entry["event_id"] = event.event_id
            entry["command_id"] = event.command_id
            self.entries.append(entry)

    def history(self, requester: str | None = None) -> list[dict[str, Any]]:
        """
        Settled exchanges, oldest first

        Args:
            requester: Restrict to one holder, or None for every holder
        """
        if requester is None:
            return list(self.entries)
        requester = normalize_address(requester)
        return [e for e in self.entries if e["requester"] == requester]

    def totals(self, requester: str) -> dict[str, int]:
        """Cumulative burn and voting power received through the exchange"""
        entries = self.history(requester)
        return {
            "exchanges": len(entries),
            "burned": sum(e["burn_amount"] for e in entries),
            "granted": sum(e["granted_power"] for e in entries),
        }
