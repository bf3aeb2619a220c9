"""
Custom exceptions for the Voting Power Exchange

Every rejection the exchange can produce is a typed exception carrying
enough context (digest, signature, current voting power, ...) to diagnose
the failure without a second query.

Fun fact: Solidity only gained typed custom errors in version 0.8.4 (2021).
Python has had exception hierarchies since 1.5 - we simply use what it offers.
"""


class VPXError(Exception):
    """Base exception for all Voting Power Exchange errors"""

    pass


class EventStoreError(VPXError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when attempting to execute a command with duplicate command_id

    The event store normally treats a repeated command_id as success and
    returns the original events. This is only raised when that lookup fails.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates concurrent modification of a holder stream or the cap stream.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# Exchange request rejections


class ExchangeRejected(VPXError):
    """
    Base class for a rejected exchange request

    Raised before any state is touched: a rejected request never consumes
    a nonce and never moves a balance.
    """

    reason: str = "rejected"


class AddressIsZero(ExchangeRejected):
    """Raised when the requester is the zero address"""

    reason = "address_is_zero"

    def __init__(self, field: str = "requester") -> None:
        self.field = field
        super().__init__(f"{field} must not be the zero address")


class AmountIsTooSmall(ExchangeRejected):
    """Raised when the requested burn is below the minimum exchangeable amount"""

    reason = "amount_is_too_small"

    def __init__(self, amount: int, minimum: int) -> None:
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Amount {amount} is below the minimum exchange amount {minimum}"
        )


class InvalidNonce(ExchangeRejected):
    """Raised when the (requester, nonce) pair has already been consumed"""

    reason = "invalid_nonce"

    def __init__(self, requester: str, nonce: bytes) -> None:
        self.requester = requester
        self.nonce = nonce
        super().__init__(f"Nonce 0x{nonce.hex()} already used by {requester}")


class SignatureExpired(ExchangeRejected):
    """Raised when the intent's expiration lies in the past"""

    reason = "signature_expired"

    def __init__(self, expiration: int, now: int) -> None:
        self.expiration = expiration
        self.now = now
        super().__init__(f"Intent expired at {expiration} (now {now})")


class VotingPowerIsHigherThanCap(ExchangeRejected):
    """Raised when the holder already sits at or above the voting power cap"""

    reason = "voting_power_is_higher_than_cap"

    def __init__(self, current_voting_power: int, cap: int) -> None:
        self.current_voting_power = current_voting_power
        self.cap = cap
        super().__init__(
            f"Current voting power {current_voting_power} is not below cap {cap}"
        )


class InvalidSignature(ExchangeRejected):
    """Raised when the signature was not produced by the claimed requester"""

    reason = "invalid_signature"

    def __init__(self, digest: bytes, signature: bytes) -> None:
        self.digest = digest
        self.signature = signature
        super().__init__(
            f"Invalid signature 0x{signature.hex()} for digest 0x{digest.hex()}"
        )


# Policy errors


class PolicyViolation(VPXError):
    """Base class for cap policy errors"""

    pass


class LevelIsLowerThanExisting(PolicyViolation):
    """Raised when a new voting power cap does not exceed the current one"""

    def __init__(self, new_cap: int, current_cap: int) -> None:
        self.new_cap = new_cap
        self.current_cap = current_cap
        super().__init__(
            f"New cap {new_cap} must be greater than current cap {current_cap}"
        )


class AccessControlUnauthorizedAccount(VPXError):
    """Raised when an account lacks the role a privileged operation requires"""

    def __init__(self, account: str, role: bytes) -> None:
        self.account = account
        self.role = role
        super().__init__(f"Account {account} is missing role 0x{role.hex()}")


# Invariant violations


class InvariantViolation(VPXError):
    """
    Raised when an internal invariant would be violated

    These indicate a caller bug (for example a stale holder state passed to
    the curve), never a user error.
    """

    pass


class CurveUnderflow(InvariantViolation):
    """Raised when a curve computation would produce a negative value"""

    def __init__(self, operation: str, lhs: int, rhs: int) -> None:
        self.operation = operation
        self.lhs = lhs
        self.rhs = rhs
        super().__init__(f"{operation} underflow: {lhs} - {rhs} < 0")


class CurveOverflow(InvariantViolation):
    """Raised when an intermediate curve value leaves the uint256 range"""

    def __init__(self, operation: str, value: int) -> None:
        self.operation = operation
        self.value = value
        super().__init__(f"{operation} overflow: {value} exceeds uint256")


# Ledger collaborator errors


class LedgerError(VPXError):
    """Base class for token ledger errors"""

    pass


class InsufficientBalance(LedgerError):
    """Raised when an account balance cannot cover a debit"""

    def __init__(self, account: str, balance: int, needed: int) -> None:
        self.account = account
        self.balance = balance
        self.needed = needed
        super().__init__(f"Account {account} balance {balance} is below {needed}")


class InsufficientAllowance(LedgerError):
    """Raised when a spender's allowance cannot cover a transfer_from"""

    def __init__(self, owner: str, spender: str, allowance: int, needed: int) -> None:
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.needed = needed
        super().__init__(
            f"Spender {spender} allowance {allowance} from {owner} is below {needed}"
        )
