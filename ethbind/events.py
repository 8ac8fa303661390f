"""
Event log matching and decoding.

Indexed parameters live in ``topics[1:]`` (``topics[0:]`` for anonymous
events). Value types (bool, integers, address, bytesN) are stored directly
in their topic word. Every other type (``bytes``, ``string``, arrays,
tuples) is stored as the Keccak hash of its in-place encoding; decoding such
a parameter yields a :class:`HashedTopic` holding only that hash, since
the value itself is not recoverable from the log.

Non-indexed parameters are ABI encoded as a tuple in the log ``data``.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .abi.codec import decode_tuple, encode_packed_topic
from .abi.signatures import EventSignature
from .abi.types import is_value_type
from .exceptions import DecodingError, EncodingError, SelectorMismatch
from .models import Log, TxReceipt
from .utils import keccak256, to_hex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashedTopic:
    """Keccak-256 hash standing in for an indexed reference-type parameter."""
    hash: bytes

    def hex(self) -> str:
        return to_hex(self.hash)


@dataclass(frozen=True)
class DecodedEvent:
    """A log decoded against an event signature."""
    event: str
    args: Dict[str, Any]
    log: Log

    def __getitem__(self, name: str) -> Any:
        return self.args[name]


LogLike = Union[Log, Mapping[str, Any]]


def _as_log(log: LogLike) -> Log:
    return log if isinstance(log, Log) else Log.from_rpc(log)


def matches(log: LogLike, event: EventSignature) -> bool:
    """
    Check whether ``log`` was emitted by ``event``.

    Non-anonymous events are matched on ``topics[0]``; both kinds also need
    the right number of topics, which tells apart events sharing a signature
    but indexing different parameters.
    """
    log = _as_log(log)
    if len(log.topics) != event.topic_count:
        return False
    if not event.anonymous and log.topics[0] != event.topic:
        return False
    return True


def decode(log: LogLike, event: EventSignature) -> DecodedEvent:
    """
    Decode ``log`` as ``event``.

    Returns:
        DecodedEvent mapping every parameter name to its value

    Raises:
        SelectorMismatch: If ``topics[0]`` is not the event topic
        DecodingError: If the topic count is wrong or the data is malformed
    """
    log = _as_log(log)
    topics = list(log.topics)

    if not event.anonymous:
        if not topics:
            raise DecodingError(f"Log has no topics, {event.canonical} needs {event.topic_count}")
        if topics[0] != event.topic:
            raise SelectorMismatch(
                f"Log topic {to_hex(topics[0])} is not {event.canonical}",
                expected=event.topic,
                actual=topics[0]
            )
        topics = topics[1:]

    indexed = event.indexed_params
    if len(topics) != len(indexed):
        raise DecodingError(
            f"{event.canonical} expects {len(indexed)} indexed topic(s), log has {len(topics)}"
        )

    indexed_values = {p.name: _decode_topic(p.type, t) for p, t in zip(indexed, topics)}

    data_params = event.data_params
    data_values = decode_tuple([p.type for p in data_params], log.data) if data_params else []

    args: Dict[str, Any] = {}
    data_iter = iter(data_values)
    for p in event.params:
        args[p.name] = indexed_values[p.name] if p.indexed else next(data_iter)

    return DecodedEvent(event=event.name, args=args, log=log)


def _decode_topic(abi_type, topic: bytes) -> Any:
    if is_value_type(abi_type):
        return decode_tuple([abi_type], topic)[0]
    return HashedTopic(topic)


def encode_topic(abi_type, value: Any) -> bytes:
    """
    Topic word for an indexed parameter value.

    Value types are padded to 32 bytes; reference types are hashed.
    """
    packed = encode_packed_topic(abi_type, value)
    if is_value_type(abi_type):
        return packed
    return keccak256(packed)


def topic_filter(event: EventSignature, **indexed_values: Any) -> List[Optional[str]]:
    """
    Build a ``topics`` filter for ``eth_getLogs`` / ``eth_newFilter``.

    Args:
        event: Event to filter on
        **indexed_values: Values for indexed parameters; missing or None
            parameters are wildcards. A list matches any of its values.

    Returns:
        Topic list with trailing wildcards trimmed
    """
    indexed = {p.name: p for p in event.indexed_params}
    unknown = set(indexed_values) - set(indexed)
    if unknown:
        raise EncodingError(f"{event.canonical} has no indexed parameter(s) {sorted(unknown)}")

    topics: List[Any] = [] if event.anonymous else [event.topic_hex]
    for p in event.indexed_params:
        value = indexed_values.get(p.name)
        if value is None:
            topics.append(None)
        elif isinstance(value, list) and is_value_type(p.type):
            # any of the listed values
            topics.append([to_hex(encode_topic(p.type, v)) for v in value])
        else:
            topics.append(to_hex(encode_topic(p.type, value)))

    while topics and topics[-1] is None:
        topics.pop()
    return topics


class EventDecoder:
    """
    Registry decoding logs of several events.

    Events are indexed by topic; anonymous events are tried in registration
    order when no topic matches.
    """

    def __init__(self, events: Iterable[EventSignature] = ()):
        self._by_topic: Dict[bytes, List[EventSignature]] = {}
        self._anonymous: List[EventSignature] = []
        for e in events:
            self.add(e)

    def add(self, event: EventSignature) -> None:
        if event.anonymous:
            self._anonymous.append(event)
        else:
            self._by_topic.setdefault(event.topic, []).append(event)

    def find(self, log: LogLike) -> Optional[EventSignature]:
        log = _as_log(log)
        if log.topics:
            for candidate in self._by_topic.get(log.topics[0], []):
                if matches(log, candidate):
                    return candidate
        for candidate in self._anonymous:
            if matches(log, candidate):
                return candidate
        return None

    def decode_log(self, log: LogLike) -> DecodedEvent:
        """
        Decode a log against whichever registered event it matches.

        Raises:
            SelectorMismatch: If no registered event matches
        """
        log = _as_log(log)
        event = self.find(log)
        if event is None:
            raise SelectorMismatch(
                f"No registered event matches log from {log.address}",
                actual=log.topics[0] if log.topics else None
            )
        return decode(log, event)


def decode_receipt(receipt: Union[TxReceipt, Mapping[str, Any]], event: EventSignature,
                   address: Optional[str] = None) -> List[DecodedEvent]:
    """
    Decode every log of ``receipt`` emitted as ``event``.

    Logs of other events are skipped; a log that matches the event but fails
    to decode raises.

    Args:
        receipt: Mined transaction receipt
        event: Event to extract
        address: Only consider logs emitted by this contract
    """
    if not isinstance(receipt, TxReceipt):
        receipt = TxReceipt.from_rpc(receipt)
    results = []
    for log in receipt.logs:
        if address is not None and log.address.lower() != address.lower():
            continue
        if matches(log, event):
            results.append(decode(log, event))
    logger.debug(f"Decoded {len(results)} {event.name} event(s) from {receipt.tx_hash}")
    return results
