"""
Log subscriptions.

``historical_logs`` walks a closed block range in chunks with ``eth_getLogs``.
It is a plain generator: calling it again replays the range.

``LogSubscription`` is a live stream backed by a node filter. A poller thread
drains ``eth_getFilterChanges`` into a bounded buffer that consumers read
with ``get`` or by iterating. When the buffer is full the overflow policy
decides whether the oldest entry is dropped or the subscription fails.
Transport failures are retried; any other error in the poller fails the
subscription too. A failed subscription uninstalls its filter and raises
the error on the next read.

Logs the node reports as ``removed`` after a reorganization are delivered
with ``removed=True``. Positions from the removed log onward are accepted
again, so logs re-mined there come through as new entries.
"""
import logging
import threading
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple, Union

from .abi.signatures import EventSignature
from .events import DecodedEvent, decode
from .exceptions import (
    CodecError, FilterNotFoundError, SubscriptionClosed, SubscriptionOverflowError, TransportError
)
from .models import Log
from .transport import BlockId, Transport
from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)

Topics = List[Union[None, str, List[str]]]


class OverflowPolicy(str, Enum):
    """What a live subscription does when its buffer is full"""
    DROP_OLDEST = "drop_oldest"
    FAIL = "fail"


def filter_params(
    address: Optional[Union[str, List[str]]] = None,
    topics: Optional[Topics] = None,
    from_block: Optional[BlockId] = None,
    to_block: Optional[BlockId] = None
) -> Dict[str, Any]:
    """Filter object for ``eth_getLogs`` / ``eth_newFilter``."""
    params: Dict[str, Any] = {}
    if address is not None:
        params["address"] = address
    if topics:
        params["topics"] = topics
    if from_block is not None:
        params["fromBlock"] = from_block
    if to_block is not None:
        params["toBlock"] = to_block
    return params


def historical_logs(
    transport: Transport,
    address: Optional[Union[str, List[str]]] = None,
    topics: Optional[Topics] = None,
    from_block: int = 0,
    to_block: Optional[int] = None,
    chunk_size: int = 1000
) -> Iterator[Log]:
    """
    Yield logs in ``[from_block, to_block]`` in chain order.

    Args:
        transport: Node transport
        address: Contract address (or addresses) to filter on
        topics: Topic filter, see ``events.topic_filter``
        from_block: First block, inclusive
        to_block: Last block, inclusive (default: current head)
        chunk_size: Number of blocks per ``eth_getLogs`` request

    Raises:
        ValueError: If ``chunk_size`` is not positive
        TransportError: If a request fails
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if to_block is None:
        to_block = transport.block_number()

    start = from_block
    while start <= to_block:
        end = min(start + chunk_size - 1, to_block)
        logs = transport.get_logs(filter_params(address, topics, start, end))
        logger.debug(f"Fetched {len(logs)} log(s) in blocks {start}..{end}")
        for log in logs:
            yield log
        start = end + 1


class LogSubscription:
    """
    Live log stream with a bounded buffer.

    Example:
        with LogSubscription(transport, address=token, topics=[transfer.topic_hex]) as sub:
            for log in sub:
                ...

    The subscription is cancellable at any point with ``close``, which stops
    the poller and uninstalls the node filter. ``restart`` resumes from the
    last block seen; logs already delivered are not delivered twice.
    """

    def __init__(
        self,
        transport: Transport,
        address: Optional[Union[str, List[str]]] = None,
        topics: Optional[Topics] = None,
        from_block: BlockId = "latest",
        event: Optional[EventSignature] = None,
        buffer_size: int = 1024,
        overflow: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
        poll_interval: float = 1.0,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            transport: Node transport
            address: Contract address (or addresses) to filter on
            topics: Topic filter
            from_block: Block to start from
            event: When given, logs are delivered decoded as this event
            buffer_size: Maximum number of undelivered entries
            overflow: Overflow policy
            poll_interval: Seconds between filter polls
            logger: Optional logger instance
        """
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self.transport = transport
        self.address = address
        self.topics = topics
        self.from_block = from_block
        self.event = event
        self.buffer_size = buffer_size
        self.overflow = OverflowPolicy(overflow)
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

        self.filter_id: Optional[str] = None
        self.dropped = 0
        self.last_block: Optional[int] = None
        self._last_position: Optional[Tuple[int, int]] = None

        self._buffer: Deque[Union[Log, DecodedEvent]] = deque()
        self._cond = threading.Condition()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[Exception] = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[Exception]:
        """Failure that stopped the poller, raised on the next read"""
        return self._error

    def start(self) -> "LogSubscription":
        """Install the filter and start polling."""
        if self._closed:
            raise SubscriptionClosed("Subscription is closed; use restart()")
        if self.running:
            return self
        self._install(self.from_block)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="ethbind-log-subscription", daemon=True)
        self._thread.start()
        return self

    def restart(self) -> "LogSubscription":
        """
        Resume polling after ``close`` or a failure, from the last block seen.

        Entries still in the buffer are kept.
        """
        self.close()
        with self._cond:
            self._closed = False
            self._error = None
        if self.last_block is not None:
            self.from_block = self.last_block
        self.logger.info(f"Restarting log subscription from block {self.from_block}")
        return self.start()

    def close(self) -> None:
        """Stop the poller and uninstall the node filter. Idempotent."""
        self._stop.set()
        with self._cond:
            self._closed = True
            self._cond.notify_all()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        self._uninstall()

    def get(self, timeout: Optional[float] = None) -> Optional[Union[Log, DecodedEvent]]:
        """
        Next buffered entry.

        Args:
            timeout: Seconds to wait; None blocks until an entry arrives

        Returns:
            The entry, or None if ``timeout`` elapsed first

        Raises:
            SubscriptionOverflowError: If the buffer overflowed under FAIL
            SubscriptionClosed: If the subscription is closed and drained
        """
        with self._cond:
            while True:
                if self._error is not None:
                    raise self._error
                if self._buffer:
                    return self._buffer.popleft()
                if self._closed:
                    raise SubscriptionClosed("Log subscription is closed")
                if not self._cond.wait(timeout) and not self._buffer:
                    if self._error is None and not self._closed:
                        return None

    def __iter__(self) -> Iterator[Union[Log, DecodedEvent]]:
        while True:
            try:
                item = self.get()
            except SubscriptionClosed:
                return
            if item is not None:
                yield item

    def __len__(self) -> int:
        with self._cond:
            return len(self._buffer)

    def __enter__(self) -> "LogSubscription":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _install(self, from_block: BlockId) -> None:
        self.filter_id = self.transport.new_filter(
            filter_params(self.address, self.topics, from_block)
        )
        self.logger.debug(f"Installed filter {self.filter_id} from block {from_block}")

    def _run(self) -> None:
        try:
            self._poll()
        except Exception as e:
            self._fail(e)

    def _poll(self) -> None:
        while not self._stop.is_set():
            try:
                logs = self.transport.get_filter_changes(self.filter_id)
            except FilterNotFoundError:
                resume = self.last_block if self.last_block is not None else self.from_block
                self.logger.warning(f"Filter {self.filter_id} dropped by node, reinstalling from block {resume}")
                try:
                    self._install(resume)
                except TransportError as e:
                    rate_limited_log(f"Failed to reinstall log filter: {e}", logger_instance=self.logger)
                    self._stop.wait(self.poll_interval)
                continue
            except TransportError as e:
                rate_limited_log(f"Polling filter {self.filter_id} failed: {e}", logger_instance=self.logger)
                logs = []

            for log in logs:
                if not self._push(log):
                    return
            self._stop.wait(self.poll_interval)

    def _push(self, log: Log) -> bool:
        position = None
        if log.block_number is not None and log.log_index is not None:
            position = (log.block_number, log.log_index)
            # removal notices skip the duplicate check
            if not log.removed and self._last_position is not None and position <= self._last_position:
                return True

        item: Union[Log, DecodedEvent] = log
        if self.event is not None:
            try:
                item = decode(log, self.event)
            except CodecError as e:
                self._fail(e)
                return False

        with self._cond:
            if len(self._buffer) >= self.buffer_size:
                if self.overflow == OverflowPolicy.FAIL:
                    self._fail(SubscriptionOverflowError(
                        f"Log buffer of {self.buffer_size} entries overflowed"
                    ))
                    return False
                self._buffer.popleft()
                self.dropped += 1
                rate_limited_log(
                    f"Log buffer full, dropped oldest entry ({self.dropped} dropped so far)",
                    logger_instance=self.logger
                )
            self._buffer.append(item)
            if log.removed:
                self._rewind(log)
            else:
                if position is not None:
                    self._last_position = position
                if log.block_number is not None:
                    self.last_block = max(self.last_block or 0, log.block_number)
            self._cond.notify_all()
        return True

    def _rewind(self, log: Log) -> None:
        """Let logs re-mined at or after a removed log's position through again"""
        if log.block_number is None:
            return
        if self.last_block is not None:
            self.last_block = min(self.last_block, log.block_number)
        if log.log_index is not None and self._last_position is not None:
            before = (log.block_number, log.log_index - 1)
            self._last_position = min(self._last_position, before)

    def _fail(self, error: Exception) -> None:
        self.logger.error(f"Log subscription failed: {error}")
        with self._cond:
            self._error = error
            self._cond.notify_all()
        self._stop.set()
        self._uninstall()

    def _uninstall(self) -> None:
        if self.filter_id is None:
            return
        filter_id, self.filter_id = self.filter_id, None
        try:
            self.transport.uninstall_filter(filter_id)
            self.logger.debug(f"Uninstalled filter {filter_id}")
        except TransportError as e:
            self.logger.warning(f"Failed to uninstall filter {filter_id}: {e}")
