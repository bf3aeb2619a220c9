"""
Exchange Module Handlers - Command→Event transformation

Handlers are the decision-making layer. They:
1. Receive current state (replay guard lookup, holder balances, cap)
2. Run the admission gates in order
3. Price the exchange against the curve and the cap
4. Return events for the facade to settle and append

Handlers never mutate anything. Settlement (nonce consumption, ledger
transfers, mint) happens in the facade inside one atomic unit of work.
"""

from voting_power_exchange.exchange.commands import Exchange, SetVotingPowerCap
from voting_power_exchange.exchange.events import (
    CAP_STREAM_ID,
    CAP_STREAM_TYPE,
    HOLDER_STREAM_TYPE,
    NonceConsumed,
    VotingPowerCapSet,
    VotingPowerReceived,
    holder_stream_id,
)
from voting_power_exchange.exchange.invariants import (
    validate_below_cap,
    validate_cap_increase,
    validate_minimum_amount,
    validate_nonce_unused,
    validate_not_expired,
    validate_requester_not_zero,
    validate_signature,
)
from voting_power_exchange.exchange.models import quote_exchange
from voting_power_exchange.exchange.signing import AuthorizationVerifier
from voting_power_exchange.kernel.events import Event, create_event
from voting_power_exchange.kernel.ids import generate_id
from voting_power_exchange.kernel.time import TimeProvider


class ExchangeCommandHandlers:
    """
    Command handlers for the exchange module

    Handlers convert commands into events, enforcing the admission gates.
    They depend on the caller for current state.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        verifier: AuthorizationVerifier,
    ) -> None:
        """
        Args:
            time_provider: For expiration checks and timestamps
            verifier: EIP-712 signature verification for this deployment
        """
        self.time_provider = time_provider
        self.verifier = verifier

    def handle_exchange(
        self,
        command: Exchange,
        command_id: str,
        actor_id: str | None,
        nonce_consumed: bool,
        current_voting_power: int,
        current_burned_amount: int,
        cap: int,
        holder_version: int,
    ) -> list[Event]:
        """
        Handle Exchange command

        Validates, in order:
        - Requester is not the zero address
        - Amount >= MINIMUM_EXCHANGE_AMOUNT
        - Nonce not consumed
        - Intent not expired
        - Holder below cap
        - Signature valid

        Args:
            command: Exchange command carrying the signed intent
            command_id: Idempotency key (derived from requester and nonce)
            actor_id: Operator funding the burn
            nonce_consumed: ReplayGuard lookup for the intent
            current_voting_power: Requester's governance balance
            current_burned_amount: Requester's cumulative utility burn
            cap: Current voting power cap
            holder_version: Current version of the requester's stream

        Returns:
            [NonceConsumed, VotingPowerReceived]

        Raises:
            ExchangeRejected: One subclass per failed gate
        """
        intent = command.intent
        now = self.time_provider.now()

        validate_requester_not_zero(intent)
        validate_minimum_amount(intent)
        validate_nonce_unused(intent, nonce_consumed)
        validate_not_expired(intent, self.time_provider.timestamp())
        validate_below_cap(current_voting_power, cap)
        digest = validate_signature(intent, self.verifier)

        quote = quote_exchange(
            intent.amount, current_burned_amount, current_voting_power, cap
        )

        stream_id = holder_stream_id(intent.requester)

        nonce_payload = NonceConsumed(
            requester=intent.requester,
            nonce="0x" + intent.nonce.hex(),
            expiration=intent.expiration,
            digest="0x" + digest.hex(),
            consumed_at=now,
        ).model_dump(mode="json")

        received_payload = VotingPowerReceived(
            requester=intent.requester,
            operator=actor_id,
            requested_amount=quote.requested_amount,
            burn_amount=quote.burn_amount,
            granted_power=quote.granted_power,
            partial_fill=quote.partial_fill,
            previous_burned_amount=current_burned_amount,
            previous_voting_power=current_voting_power,
            cap=cap,
            received_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=stream_id,
                stream_type=HOLDER_STREAM_TYPE,
                event_type="NonceConsumed",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=nonce_payload,
                version=holder_version + 1,
            ),
            create_event(
                event_id=generate_id(),
                stream_id=stream_id,
                stream_type=HOLDER_STREAM_TYPE,
                event_type="VotingPowerReceived",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=received_payload,
                version=holder_version + 2,
            ),
        ]

    def handle_set_voting_power_cap(
        self,
        command: SetVotingPowerCap,
        command_id: str,
        actor_id: str | None,
        current_cap: int,
        cap_version: int,
    ) -> list[Event]:
        """
        Handle SetVotingPowerCap command

        Args:
            command: SetVotingPowerCap command
            command_id: Idempotency key
            actor_id: Manager raising the cap
            current_cap: Cap in force
            cap_version: Current version of the cap stream

        Returns:
            [VotingPowerCapSet]

        Raises:
            LevelIsLowerThanExisting: If new_cap <= current_cap
        """
        now = self.time_provider.now()

        validate_cap_increase(command.new_cap, current_cap)

        payload = VotingPowerCapSet(
            previous_cap=current_cap,
            new_cap=command.new_cap,
            set_at=now,
            set_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=CAP_STREAM_ID,
                stream_type=CAP_STREAM_TYPE,
                event_type="VotingPowerCapSet",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=cap_version + 1,
            )
        ]
