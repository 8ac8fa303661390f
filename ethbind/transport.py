"""
Transport layer for JSON-RPC nodes.

This module provides an abstraction over the handful of node methods the
invoker and the subscriptions need, and a ``web3`` based implementation.
Every transport failure is surfaced as a ``TransportError`` (or one of its
subclasses) so callers can tell it apart from codec errors.
"""
import logging
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from pydantic import ValidationError
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .calls import decode_revert_reason
from .config import EthereumConfig
from .exceptions import DecodingError, EncodingError, FilterNotFoundError, NonceError, RevertError, TransportError
from .models import Log, TxReceipt
from .utils import hex_to_bytes, to_hex

logger = logging.getLogger(__name__)

BlockId = Union[int, str]

_NONCE_MESSAGES = (
    "nonce too low",
    "nonce too high",
    "invalid nonce",
    "replacement transaction underpriced",
    "already known",
    "known transaction",
)


class Transport(ABC):
    """
    Abstract base class for node transports.

    Implementations must be safe to call from several threads at once.
    """

    @abstractmethod
    def call(self, tx: Dict[str, Any], block: BlockId = "latest") -> bytes:
        """
        Execute a read-only call (``eth_call``).

        Args:
            tx: Call object with at least ``to`` and ``data``
            block: Block number or tag to execute against

        Returns:
            Raw return data

        Raises:
            RevertError: If the node reports that execution reverted
            TransportError: On any other failure
        """
        pass

    @abstractmethod
    def send_raw_transaction(self, raw_tx: bytes) -> str:
        """Broadcast a signed transaction and return its 0x hash."""
        pass

    @abstractmethod
    def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Receipt of a mined transaction, or None while it is not mined."""
        pass

    @abstractmethod
    def get_logs(self, params: Dict[str, Any]) -> List[Log]:
        """Logs matching a filter object (``eth_getLogs``), in chain order."""
        pass

    @abstractmethod
    def new_filter(self, params: Dict[str, Any]) -> str:
        """Install a log filter on the node and return its id."""
        pass

    @abstractmethod
    def get_filter_changes(self, filter_id: str) -> List[Log]:
        """
        Logs added since the last poll of ``filter_id``.

        Raises:
            FilterNotFoundError: If the node dropped the filter
        """
        pass

    @abstractmethod
    def uninstall_filter(self, filter_id: str) -> bool:
        pass

    @abstractmethod
    def get_transaction_count(self, address: str, block: BlockId = "pending") -> int:
        pass

    @abstractmethod
    def get_code(self, address: str, block: BlockId = "latest") -> bytes:
        pass

    @abstractmethod
    def gas_price(self) -> int:
        pass

    @abstractmethod
    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        pass

    @abstractmethod
    def chain_id(self) -> int:
        pass

    @abstractmethod
    def block_number(self) -> int:
        pass

    def close(self) -> None:
        """Close any open connections or resources."""
        pass


def build_session(config: EthereumConfig) -> requests.Session:
    """
    HTTP session for the node, with retries and optional basic auth.
    """
    session = requests.Session()
    retries = Retry(
        total=config.retry_count,
        backoff_factor=0.5,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["POST"],
        raise_on_status=False,
        connect=config.retry_count,
        read=config.retry_count,
        other=config.retry_count
    )
    session.mount("http://", HTTPAdapter(max_retries=retries))
    session.mount("https://", HTTPAdapter(max_retries=retries))
    if config.node_login and config.node_password:
        session.auth = (config.node_login, config.node_password)
    return session


def is_nonce_error(message: str) -> bool:
    lowered = message.lower()
    return any(m in lowered for m in _NONCE_MESSAGES)


def translate_error(error: Exception, action: str) -> TransportError:
    """
    Map a web3/requests exception to the ethbind taxonomy.

    Args:
        error: Exception raised by web3 or requests
        action: Short description of what was attempted, for the message
    """
    message = _error_message(error)
    if is_nonce_error(message):
        return NonceError(f"{action} rejected: {message}")
    return TransportError(f"{action} failed: {message}")


def _error_message(error: Exception) -> str:
    # web3 v6 raises ValueError({'code': ..., 'message': ...}) for RPC errors
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get("message", error.args[0]))
    return str(error)


def parse_logs(logs: Any, action: str) -> List[Log]:
    """Parse raw logs, raising DecodingError for malformed entries"""
    try:
        return [Log.from_rpc(log) for log in logs]
    except (ValidationError, EncodingError, TypeError) as e:
        raise DecodingError(f"Malformed log in {action} response: {e}") from e


class Web3Transport(Transport):
    """
    Transport backed by a ``web3.Web3`` instance over HTTP.
    """

    def __init__(
        self,
        config: Optional[EthereumConfig] = None,
        w3: Optional[Web3] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the transport.

        Args:
            config: Node settings (defaults to ``EthereumConfig()``)
            w3: Pre-built Web3 instance; when given, ``config.url`` is not used
            logger: Optional logger instance
        """
        self.config = config or EthereumConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.session: Optional[requests.Session] = None

        if w3 is None:
            self._check_url(self.config.url)
            self.session = build_session(self.config)
            provider = Web3.HTTPProvider(
                self.config.url,
                request_kwargs={"timeout": self.config.request_timeout},
                session=self.session
            )
            w3 = Web3(provider)
        self.w3 = w3

    def _check_url(self, url: str) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Node URL must use http:// or https:// (got: {url})")
        host = parsed.hostname or ""
        if parsed.scheme != "https" and host not in ("localhost", "127.0.0.1"):
            self.logger.warning(f"Node URL {url} is not using https://")

    def call(self, tx: Dict[str, Any], block: BlockId = "latest") -> bytes:
        try:
            result = self.w3.eth.call(tx, block_identifier=block)
        except ContractLogicError as e:
            data = getattr(e, "data", None)
            raw = None
            if isinstance(data, (str, bytes)):
                try:
                    raw = hex_to_bytes(data)
                except EncodingError:
                    raw = None
            reason = decode_revert_reason(raw) or getattr(e, "message", None) or str(e)
            raise RevertError(f"Call to {tx.get('to')} reverted: {reason}", reason=reason, data=raw) from e
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, f"eth_call to {tx.get('to')}") from e
        return bytes(result)

    def send_raw_transaction(self, raw_tx: bytes) -> str:
        try:
            tx_hash = self.w3.eth.send_raw_transaction(raw_tx)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_sendRawTransaction") from e
        return to_hex(bytes(tx_hash))

    def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, f"eth_getTransactionReceipt {tx_hash}") from e
        if receipt is None:
            return None
        try:
            return TxReceipt.from_rpc(receipt)
        except (ValidationError, EncodingError, TypeError) as e:
            raise DecodingError(f"Malformed receipt for {tx_hash}: {e}") from e

    def get_logs(self, params: Dict[str, Any]) -> List[Log]:
        try:
            logs = self.w3.eth.get_logs(params)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_getLogs") from e
        return parse_logs(logs, "eth_getLogs")

    def new_filter(self, params: Dict[str, Any]) -> str:
        try:
            log_filter = self.w3.eth.filter(params)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_newFilter") from e
        return log_filter.filter_id

    def get_filter_changes(self, filter_id: str) -> List[Log]:
        try:
            logs = self.w3.eth.get_filter_changes(filter_id)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            if "filter not found" in _error_message(e).lower():
                raise FilterNotFoundError(filter_id) from e
            raise translate_error(e, f"eth_getFilterChanges {filter_id}") from e
        return parse_logs(logs, f"eth_getFilterChanges {filter_id}")

    def uninstall_filter(self, filter_id: str) -> bool:
        try:
            return bool(self.w3.eth.uninstall_filter(filter_id))
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, f"eth_uninstallFilter {filter_id}") from e

    def get_transaction_count(self, address: str, block: BlockId = "pending") -> int:
        try:
            return int(self.w3.eth.get_transaction_count(address, block))
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, f"eth_getTransactionCount {address}") from e

    def get_code(self, address: str, block: BlockId = "latest") -> bytes:
        try:
            return bytes(self.w3.eth.get_code(address, block))
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, f"eth_getCode {address}") from e

    def gas_price(self) -> int:
        try:
            return int(self.w3.eth.gas_price)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_gasPrice") from e

    def estimate_gas(self, tx: Dict[str, Any]) -> int:
        try:
            return int(self.w3.eth.estimate_gas(tx))
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            raise RevertError(f"Gas estimation reverted: {reason}", reason=reason) from e
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_estimateGas") from e

    def chain_id(self) -> int:
        try:
            return int(self.w3.eth.chain_id)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_chainId") from e

    def block_number(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
            raise translate_error(e, "eth_blockNumber") from e

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
