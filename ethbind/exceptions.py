"""
Exceptions for the ethbind package.

Codec errors (``EncodingError``, ``DecodingError``, ``SelectorMismatch``) are
local to one call or one decode and never come from the network. Invocation
errors (``TransportError``, ``RevertError``, ``TransactionTimeoutError``) are
raised by the invoker and the transports.
"""
from typing import Optional


class EthBindError(Exception):
    """Base exception for all ethbind errors."""
    pass


class CodecError(EthBindError):
    """Base class for ABI encoding and decoding failures."""
    pass


class EncodingError(CodecError):
    """Raised when a value does not fit its declared ABI type."""
    pass


class DecodingError(CodecError):
    """Raised when a payload cannot be decoded as the requested ABI types."""
    pass


class SelectorMismatch(DecodingError):
    """Raised when a payload or log belongs to a different function or event."""

    def __init__(self, message: str, expected: Optional[bytes] = None, actual: Optional[bytes] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class InvocationError(EthBindError):
    """Base class for errors raised while talking to a node."""
    pass


class TransportError(InvocationError):
    """Raised when the JSON-RPC transport fails."""
    pass


class NonceError(TransportError):
    """
    Raised when the node rejects a transaction because of its nonce.

    The invoker never retries this blindly; the cached nonce of the sender is
    dropped so the next submission fetches a fresh one.
    """
    pass


class ContractNotFoundError(TransportError):
    """Raised when a call targets an address with no deployed code."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No contract code at address {address}")


class RevertError(InvocationError):
    """Raised when contract execution fails."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
        status: Optional[int] = None,
        data: Optional[bytes] = None
    ):
        self.reason = reason
        self.tx_hash = tx_hash
        self.status = status
        self.data = data
        super().__init__(message)


class TransactionTimeoutError(InvocationError):
    """
    Raised when no receipt was observed before the deadline.

    This does not mean the transaction failed: it may still be mined later
    and can be re-polled with ``Invoker.track(tx_hash)``.
    """

    def __init__(self, tx_hash: str, attempts: int = 0):
        self.tx_hash = tx_hash
        self.attempts = attempts
        super().__init__(f"Transaction {tx_hash} not mined after {attempts} polls")


class InvalidStateTransition(InvocationError):
    """Raised on an illegal transaction lifecycle transition."""
    pass


class SubscriptionError(EthBindError):
    """Base class for log subscription errors."""
    pass


class SubscriptionOverflowError(SubscriptionError):
    """Raised when a live subscription buffer overflows under the FAIL policy."""
    pass


class SubscriptionClosed(SubscriptionError):
    """Raised when reading from a closed subscription."""
    pass


class FilterNotFoundError(TransportError):
    """Raised when the node no longer knows a log filter id."""

    def __init__(self, filter_id: str):
        self.filter_id = filter_id
        super().__init__(f"Filter {filter_id} not found on node")
