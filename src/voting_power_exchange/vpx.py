"""
VotingPowerExchange - Main façade class

This is the primary interface for operating the exchange. It hides the
event log, projections and command handling behind a small API, and owns
the atomic settlement of each exchange across the replay guard and both
ledgers.

Example:
    >>> from voting_power_exchange import VotingPowerExchange
    >>> vpx = VotingPowerExchange("exchange.db", utility, governance, roles)
    >>> receipt = vpx.exchange(signed_intent, operator=exchanger)
    >>> receipt.granted_power
    1000000000000000000
    >>> vpx.set_voting_power_cap(150 * 10**18, manager=manager)
"""

from contextlib import ExitStack
from pathlib import Path
from typing import Any

from voting_power_exchange.exchange.commands import Exchange, SetVotingPowerCap
from voting_power_exchange.exchange.curve import (
    MINIMUM_EXCHANGE_AMOUNT,
    PRECISION,
    PRECISION_FIX,
)
from voting_power_exchange.exchange.events import (
    CAP_STREAM_ID,
    VotingPowerReceived,
    holder_stream_id,
)
from voting_power_exchange.exchange.handlers import ExchangeCommandHandlers
from voting_power_exchange.exchange.models import (
    ExchangeIntent,
    ExchangeQuote,
    ExchangeReceipt,
    quote_exchange,
)
from voting_power_exchange.exchange.projections import CapPolicy, ExchangeLog, ReplayGuard
from voting_power_exchange.exchange.signing import (
    EXCHANGE_TYPE,
    EXCHANGE_TYPEHASH,
    AuthorizationVerifier,
    ExchangeDomain,
    SmartAccountRegistry,
)
from voting_power_exchange.kernel.errors import (
    AccessControlUnauthorizedAccount,
    ExchangeRejected,
    InvalidNonce,
    PolicyViolation,
)
from voting_power_exchange.kernel.event_store import SQLiteEventStore
from voting_power_exchange.kernel.events import Event
from voting_power_exchange.kernel.ids import exchange_command_id, generate_id
from voting_power_exchange.kernel.logging import LogOperation, get_logger
from voting_power_exchange.kernel.metrics import (
    record_exchange,
    record_rejection,
    track_command_duration,
)
from voting_power_exchange.kernel.settings import ExchangeSettings
from voting_power_exchange.kernel.time import RealTimeProvider, TimeProvider
from voting_power_exchange.ledger.interfaces import (
    EXCHANGER_ROLE,
    MANAGER_ROLE,
    AccessControl,
    GovernanceLedger,
    UtilityLedger,
)

logger = get_logger(__name__)


class VotingPowerExchange:
    """
    Voting Power Exchange main façade

    Provides a unified API for:
    - Settling signed exchange intents (exchanger role)
    - Raising the voting power cap (manager role)
    - Read-only accessors: cap, nonces, quotes, digests, constants, history

    Not thread-safe: callers serialize requests.
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        utility_ledger: UtilityLedger,
        governance_ledger: GovernanceLedger,
        access_control: AccessControl,
        settings: ExchangeSettings | None = None,
        time_provider: TimeProvider | None = None,
        smart_accounts: SmartAccountRegistry | None = None,
    ) -> None:
        """
        Initialize the exchange

        Args:
            sqlite_path: Path to the SQLite event log
            utility_ledger: Ledger of the token being burned
            governance_ledger: Ledger of voting power and cumulative burns
            access_control: Role registry for exchanger and manager roles
            settings: Deployment settings (defaults if None)
            time_provider: Clock for expiration checks (real time if None)
            smart_accounts: Programmable accounts verified through ERC-1271
        """
        self.sqlite_path = Path(sqlite_path)
        self.settings = settings or ExchangeSettings()
        self.time_provider = time_provider or RealTimeProvider()

        self.utility_ledger = utility_ledger
        self.governance_ledger = governance_ledger
        self.access_control = access_control

        # The exchange spends the operator's allowance under its own address
        self.address = self.settings.verifying_contract
        self.domain = ExchangeDomain(
            name=self.settings.domain_name,
            version=self.settings.domain_version,
            chain_id=self.settings.chain_id,
            verifying_contract=self.settings.verifying_contract,
        )
        self.verifier = AuthorizationVerifier(self.domain, smart_accounts)

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.handlers = ExchangeCommandHandlers(self.time_provider, self.verifier)

        # Initialize projections
        self.replay_guard = ReplayGuard()
        self.cap_policy = CapPolicy(self.settings.default_voting_power_cap)
        self.exchange_log = ExchangeLog()
        self._position = 0

        # Rebuild projections from event store
        self._rebuild_projections()

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from event store"""
        self._catch_up()
        logger.info(
            "Projections rebuilt",
            events=self.event_store.count_events(),
            cap=str(self.cap_policy.get_cap()),
        )

    def _catch_up(self) -> int:
        """
        Apply events appended since the last one this instance has seen

        Other processes (the CLI, a second service) may write to the same
        log, so every decision starts from the log, not from memory.
        """
        events, self._position = self.event_store.load_events_after(self._position)
        for event in events:
            self._apply(event)
        return len(events)

    def _apply(self, event: Event) -> None:
        self.replay_guard.apply_event(event)
        self.cap_policy.apply_event(event)
        self.exchange_log.apply_event(event)

    def _require_role(self, role: bytes, account: str) -> None:
        if not self.access_control.has_role(role, account):
            raise AccessControlUnauthorizedAccount(account, role)

    # Exchange operations

    @track_command_duration("exchange")
    def exchange(self, intent: ExchangeIntent, operator: str) -> ExchangeReceipt:
        """
        Settle a signed exchange intent

        The handler admits and prices the intent without touching state.
        Settlement then runs as one unit of work: nonce consumed, operator
        funds transferred to the requester and burned, cumulative burn
        updated, voting power minted, events appended. Any failure rolls
        every participant back, including the nonce.

        Args:
            intent: Requester's signed intent
            operator: Exchanger submitting and funding the exchange

        Returns:
            ExchangeReceipt with the settled quote and recorded events

        Raises:
            AccessControlUnauthorizedAccount: If operator lacks EXCHANGER_ROLE
            ExchangeRejected: If any admission gate fails
            LedgerError: If the operator's allowance or balance cannot fund the burn
            StreamVersionConflict: If another writer appended to the holder stream
                between catch-up and append (nothing is settled; safe to retry)
        """
        with LogOperation(
            logger,
            "exchange",
            expected=(ExchangeRejected, AccessControlUnauthorizedAccount),
            requester=intent.requester,
            operator=operator,
            amount=str(intent.amount),
            nonce="0x" + intent.nonce.hex(),
        ) as op:
            self._require_role(EXCHANGER_ROLE, operator)
            self._catch_up()

            requester = intent.requester
            stream_id = holder_stream_id(requester)
            # Expected version comes from the state the decision is made on
            holder_version = self.replay_guard.stream_version(requester)
            current_burned = self.governance_ledger.burned_amount_of_util_token(requester)

            try:
                events = self.handlers.handle_exchange(
                    Exchange(intent=intent),
                    exchange_command_id(requester, intent.nonce),
                    operator,
                    nonce_consumed=self.replay_guard.is_consumed(requester, intent.nonce),
                    current_voting_power=self.governance_ledger.balance_of(requester),
                    current_burned_amount=current_burned,
                    cap=self.cap_policy.get_cap(),
                    holder_version=holder_version,
                )
            except ExchangeRejected as e:
                record_rejection(e.reason)
                raise

            received = events[-1].payload_as(VotingPowerReceived)
            quote = ExchangeQuote(
                requested_amount=received.requested_amount,
                burn_amount=received.burn_amount,
                granted_power=received.granted_power,
                partial_fill=received.partial_fill,
                current_burned_amount=received.previous_burned_amount,
                current_voting_power=received.previous_voting_power,
                cap=received.cap,
            )
            op.bind(
                burn_amount=str(quote.burn_amount),
                granted_power=str(quote.granted_power),
                partial_fill=quote.partial_fill,
            )

            try:
                with ExitStack() as unit_of_work:
                    unit_of_work.enter_context(self.replay_guard.transaction())
                    unit_of_work.enter_context(self.utility_ledger.transaction())
                    unit_of_work.enter_context(self.governance_ledger.transaction())

                    self.replay_guard.consume(requester, intent.nonce)
                    self.utility_ledger.transfer_from(
                        self.address, operator, requester, quote.burn_amount
                    )
                    self.utility_ledger.burn_by_burner(requester, quote.burn_amount)
                    self.governance_ledger.set_burned_amount_of_util_token(
                        requester, current_burned + quote.burn_amount
                    )
                    self.governance_ledger.mint(requester, quote.granted_power)
                    stored = self.event_store.append(stream_id, holder_version, events)

                    # Another writer recorded this (requester, nonce) first
                    if [e.event_id for e in stored] != [e.event_id for e in events]:
                        raise InvalidNonce(requester, intent.nonce)
            except InvalidNonce as e:
                record_rejection(e.reason)
                raise

            self._catch_up()

        record_exchange(quote.burn_amount, quote.granted_power, quote.partial_fill)
        return ExchangeReceipt(
            requester=requester, operator=operator, quote=quote, events=stored
        )

    def quote(self, requester: str, amount: int) -> ExchangeQuote:
        """
        Price an exchange for a holder without settling it

        Raises:
            VotingPowerIsHigherThanCap: If the holder has no headroom
        """
        self._catch_up()
        return quote_exchange(
            amount,
            self.governance_ledger.burned_amount_of_util_token(requester),
            self.governance_ledger.balance_of(requester),
            self.cap_policy.get_cap(),
        )

    def history(self, requester: str | None = None) -> list[dict[str, Any]]:
        """Settled exchanges, oldest first (all holders if requester is None)"""
        self._catch_up()
        return self.exchange_log.history(requester)

    # Cap operations

    @track_command_duration("set_voting_power_cap")
    def set_voting_power_cap(self, new_cap: int, manager: str) -> int:
        """
        Raise the per-holder voting power cap

        Args:
            new_cap: New cap, strictly above the current one
            manager: Account holding MANAGER_ROLE

        Returns:
            The cap now in force

        Raises:
            AccessControlUnauthorizedAccount: If manager lacks MANAGER_ROLE
            LevelIsLowerThanExisting: If new_cap <= current cap
            StreamVersionConflict: If another writer updated the cap concurrently
        """
        with LogOperation(
            logger,
            "set_voting_power_cap",
            expected=(PolicyViolation, AccessControlUnauthorizedAccount),
            new_cap=str(new_cap),
            manager=manager,
        ):
            self._require_role(MANAGER_ROLE, manager)
            self._catch_up()

            events = self.handlers.handle_set_voting_power_cap(
                SetVotingPowerCap(new_cap=new_cap),
                generate_id(),
                manager,
                current_cap=self.cap_policy.get_cap(),
                cap_version=self.cap_policy.version,
            )

            with self.cap_policy.transaction():
                self.cap_policy.set_cap(new_cap)
                self.event_store.append(CAP_STREAM_ID, self.cap_policy.version, events)

            self._catch_up()

        return self.cap_policy.get_cap()

    def get_voting_power_cap(self) -> int:
        self._catch_up()
        return self.cap_policy.get_cap()

    # Read-only accessors

    def is_nonce_consumed(self, requester: str, nonce: bytes) -> bool:
        self._catch_up()
        return self.replay_guard.is_consumed(requester, nonce)

    def domain_separator(self) -> bytes:
        return self.verifier.domain_separator()

    def exchange_digest(self, intent: ExchangeIntent) -> bytes:
        """EIP-712 digest a requester must sign for this intent"""
        return self.verifier.digest(intent)

    def constants(self) -> dict[str, Any]:
        """Curve and signing constants of this deployment"""
        return {
            "exchange_type": EXCHANGE_TYPE,
            "exchange_typehash": "0x" + EXCHANGE_TYPEHASH.hex(),
            "precision": PRECISION,
            "precision_fix": PRECISION_FIX,
            "minimum_exchange_amount": MINIMUM_EXCHANGE_AMOUNT,
        }

    def token_addresses(self) -> tuple[str, str]:
        """(utility token, governance token)"""
        return self.utility_ledger.address, self.governance_ledger.address
