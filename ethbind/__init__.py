"""
ethbind - generic Ethereum contract bindings.

Encode calls and decode results and events with the ABI codec, then run them
against a node through an ``Invoker``:

    transport = Web3Transport(EthereumConfig(url="http://127.0.0.1:8545"))
    invoker = Invoker(transport, signer=LocalSigner(private_key))
    token = BoundContract(address, load_interface("erc20"), invoker)
    token.transact("transfer", recipient, 10)
"""
from .version import __version__
from .exceptions import (
    EthBindError, CodecError, EncodingError, DecodingError, SelectorMismatch,
    InvocationError, TransportError, NonceError, ContractNotFoundError, FilterNotFoundError,
    RevertError, TransactionTimeoutError, InvalidStateTransition,
    SubscriptionError, SubscriptionOverflowError, SubscriptionClosed
)
from .abi import (
    AbiType, parse_type, encode, decode, encode_tuple, decode_tuple,
    FunctionSignature, EventSignature, EventParam, function_selector, event_topic
)
from .calls import (
    EncodedCall, build_call, decode_return, decode_revert_reason, encode_constructor,
    CallDecoder, DecodedCall
)
from .events import DecodedEvent, HashedTopic, EventDecoder, matches, topic_filter, decode_receipt
from .events import decode as decode_event
from .models import Log, TxReceipt, TxState, PendingTransaction
from .config import EthereumConfig, NetworkConfig
from .transport import Transport, Web3Transport
from .signer import Signer, LocalSigner
from .invoker import Invoker
from .subscriptions import LogSubscription, OverflowPolicy, historical_logs
from .contract import ContractInterface, BoundContract
from .contracts import load_interface, available_interfaces

__all__ = [
    "__version__",
    # Errors
    "EthBindError", "CodecError", "EncodingError", "DecodingError", "SelectorMismatch",
    "InvocationError", "TransportError", "NonceError", "ContractNotFoundError", "FilterNotFoundError",
    "RevertError", "TransactionTimeoutError", "InvalidStateTransition",
    "SubscriptionError", "SubscriptionOverflowError", "SubscriptionClosed",
    # Codec
    "AbiType", "parse_type", "encode", "decode", "encode_tuple", "decode_tuple",
    "FunctionSignature", "EventSignature", "EventParam", "function_selector", "event_topic",
    # Calls and events
    "EncodedCall", "build_call", "decode_return", "decode_revert_reason", "encode_constructor",
    "CallDecoder", "DecodedCall",
    "DecodedEvent", "HashedTopic", "EventDecoder", "matches", "topic_filter", "decode_receipt",
    "decode_event",
    # Invocation
    "Log", "TxReceipt", "TxState", "PendingTransaction",
    "EthereumConfig", "NetworkConfig",
    "Transport", "Web3Transport", "Signer", "LocalSigner", "Invoker",
    "LogSubscription", "OverflowPolicy", "historical_logs",
    "ContractInterface", "BoundContract", "load_interface", "available_interfaces",
]
