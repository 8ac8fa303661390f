"""
Invoker - drives read calls and the transaction lifecycle against a node.

Read-only calls are a single round trip. State-changing calls are signed,
submitted and then polled until a receipt shows up:

    BUILT -> SUBMITTED -> PENDING -> MINED -> CONFIRMED | REVERTED
                      \\-> TIMED_OUT <-/

``TIMED_OUT`` only means no receipt was seen before the deadline; the
transaction may still be mined and can be re-polled with ``track``.

Submissions from the same account are serialized with a per-account lock so
that nonces are never handed out twice.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .abi.signatures import FunctionSignature
from .abi.types import AbiType
from .calls import build_call, decode_return, encode_constructor
from .config import EthereumConfig
from .exceptions import (
    ContractNotFoundError, EncodingError, InvocationError, NonceError, RevertError,
    TransactionTimeoutError, TransportError
)
from .models import PendingTransaction, TxReceipt, TxState
from .signer import Signer
from .transport import BlockId, Transport
from .utils import HexLike, hex_to_bytes, to_hex
from ._rate_limited_log import rate_limited_log

# Gas limit used when estimation fails
DEFAULT_GAS_LIMIT = 300000

# Buffer added on top of estimated gas
GAS_ESTIMATE_BUFFER = 1.1


class Invoker:
    """
    Executes encoded calls and transactions through a transport.

    This client handles:
    1. Read-only calls with decoded results
    2. Signing and submitting transactions with per-account nonce tracking
    3. Polling for receipts with bounded backoff and a deadline
    4. Classifying mined transactions as confirmed or reverted
    """

    def __init__(
        self,
        transport: Transport,
        signer: Optional[Signer] = None,
        config: Optional[EthereumConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 8,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the Invoker

        Args:
            transport: Node transport
            signer: Signer for state-changing calls (optional for read-only use)
            config: Gas and polling settings (defaults to ``EthereumConfig()``)
            executor: Thread pool for the ``*_async`` methods
            max_workers: Size of the pool created when no executor is given
            logger: Optional logger instance to use for debug/info logging
        """
        self.transport = transport
        self.signer = signer
        self.config = config or EthereumConfig()
        self.logger = logger or logging.getLogger(__name__)

        self._executor = executor
        self._owns_executor = executor is None
        self._max_workers = max_workers

        self._chain_id: Optional[int] = self.config.chain_id
        self._next_nonce: Dict[str, int] = {}
        self._account_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.RLock()

    @property
    def address(self) -> str:
        """
        Address of the signing account

        Raises:
            ValueError: If no signer is available
        """
        return self._require_signer().address

    def _require_signer(self) -> Signer:
        if self.signer is None:
            raise ValueError("No signer available for state-changing calls")
        return self.signer

    # ==================== Read calls ====================

    def call(
        self,
        to: str,
        signature: FunctionSignature,
        args: Sequence[Any] = (),
        block: BlockId = "latest",
        sender: Optional[str] = None,
        value: int = 0
    ) -> List[Any]:
        """
        Execute a read-only call and decode its outputs.

        Args:
            to: Contract address
            signature: Function to call
            args: Argument values
            block: Block number or tag to read from
            sender: Optional ``from`` address for the call
            value: Wei to attach to the simulated call

        Returns:
            Decoded outputs in declaration order

        Raises:
            EncodingError: If the arguments do not match the signature
            ContractNotFoundError: If there is no code at ``to``
            RevertError: If the call reverts
            DecodingError: If the return data does not match the outputs
            TransportError: On node failures
        """
        encoded = build_call(signature, args)
        tx: Dict[str, Any] = {"to": to, "data": encoded.hex()}
        if sender:
            tx["from"] = sender
        if value:
            tx["value"] = value

        data = self.transport.call(tx, block)
        if not data and signature.outputs:
            if not self.transport.get_code(to, block):
                raise ContractNotFoundError(to)
        result = decode_return(data, signature.outputs)
        self.logger.debug(f"Call {signature.canonical} on {to} at {block} returned {len(data)} bytes")
        return result

    # ==================== Transactions ====================

    def submit(
        self,
        to: str,
        signature: FunctionSignature,
        args: Sequence[Any] = (),
        value: int = 0,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None
    ) -> PendingTransaction:
        """
        Encode, sign and submit a state-changing call.

        Returns:
            PendingTransaction in the SUBMITTED state

        Raises:
            EncodingError: If the arguments do not match, or value is sent to
                a non-payable function
            NonceError: If the node rejected the nonce
            TransportError: On node failures
        """
        if value and not signature.is_payable:
            raise EncodingError(f"{signature.canonical} is not payable")
        encoded = build_call(signature, args)
        return self.send_transaction(to, encoded.data, value=value, gas=gas, gas_price=gas_price)

    def send_transaction(
        self,
        to: Optional[str],
        data: HexLike = b"",
        value: int = 0,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None
    ) -> PendingTransaction:
        """
        Sign and submit a raw transaction.

        Args:
            to: Recipient; None creates a contract
            data: Call data or creation code
            value: Wei to transfer
            gas: Gas limit (default: config, then estimate)
            gas_price: Gas price (default: config, then node price)

        Returns:
            PendingTransaction in the SUBMITTED state
        """
        signer = self._require_signer()
        sender = signer.address
        payload = hex_to_bytes(data)

        tx: Dict[str, Any] = {"value": value, "data": to_hex(payload)}
        if to is not None:
            tx["to"] = to

        # 1. Gas and chain parameters
        tx["gasPrice"] = gas_price if gas_price is not None else self._gas_price()
        tx["gas"] = gas if gas is not None else self._gas_limit(sender, tx)
        tx["chainId"] = self._get_chain_id()

        # 2. Nonce, sign and send under the account lock
        with self._account_lock(sender):
            nonce = self._reserve_nonce(sender)
            tx["nonce"] = nonce
            raw = signer.sign_transaction(tx)
            try:
                tx_hash = self.transport.send_raw_transaction(raw)
            except NonceError as e:
                self._forget_nonce(sender)
                self.logger.error(f"Nonce {nonce} rejected for {sender}: {e}")
                raise
            except TransportError as e:
                # the node may or may not have accepted it; re-fetch next time
                self._forget_nonce(sender)
                self.logger.error(f"Failed to send transaction: {e}")
                raise
            self._next_nonce[sender] = nonce + 1

        self.logger.info(f"Transaction sent: {tx_hash} (from {sender}, nonce {nonce})")
        return PendingTransaction(tx_hash, sender=sender, nonce=nonce, call_data=payload, to=to, value=value)

    def track(self, tx_hash: str) -> PendingTransaction:
        """
        Handle for an already submitted transaction, e.g. to re-poll one that
        timed out.
        """
        return PendingTransaction(tx_hash)

    def wait(
        self,
        pending: PendingTransaction,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None
    ) -> PendingTransaction:
        """
        Poll for the receipt of ``pending`` until it reaches a terminal state.

        Args:
            pending: Transaction handle
            timeout: Deadline in seconds (default: ``config.receipt_timeout``)
            cancel: Event that aborts polling when set

        Returns:
            The same handle, now CONFIRMED, REVERTED or TIMED_OUT

        Raises:
            TransportError: If polling failed more than
                ``config.max_transport_retries`` times in a row
            InvocationError: If the receipt has no status and the outcome
                cannot be inferred
        """
        if pending.is_terminal:
            return pending

        timeout = self.config.receipt_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        interval = self.config.poll_interval
        failures = 0

        while pending.attempts < self.config.max_attempts:
            if cancel is not None and cancel.is_set():
                break

            pending.attempts += 1
            receipt = None
            final = False
            try:
                receipt = self.transport.get_receipt(pending.tx_hash)
                final = receipt is not None and self._is_final(receipt)
                failures = 0
            except TransportError as e:
                failures += 1
                if failures > self.config.max_transport_retries:
                    self.logger.error(f"Giving up polling {pending.tx_hash}: {e}")
                    raise
                rate_limited_log(
                    f"Receipt poll for {pending.tx_hash} failed, retrying: {e}",
                    logger_instance=self.logger
                )

            if final:
                self._settle(pending, receipt)
                return pending

            if pending.state == TxState.SUBMITTED:
                pending.transition(TxState.PENDING)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            sleep_time = min(interval, remaining)
            if cancel is not None:
                if cancel.wait(sleep_time):
                    break
            else:
                time.sleep(sleep_time)
            interval = min(interval * self.config.backoff_factor, self.config.max_poll_interval)

        pending.transition(TxState.TIMED_OUT)
        self.logger.warning(
            f"No receipt for {pending.tx_hash} after {pending.attempts} poll(s); "
            f"the transaction may still be mined"
        )
        return pending

    def transact(
        self,
        to: str,
        signature: FunctionSignature,
        args: Sequence[Any] = (),
        value: int = 0,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None
    ) -> TxReceipt:
        """
        Submit a state-changing call and wait for it to be mined.

        Returns:
            Receipt of the confirmed transaction

        Raises:
            RevertError: If the transaction was mined with failure status
            TransactionTimeoutError: If no receipt arrived in time
        """
        pending = self.submit(to, signature, args, value=value, gas=gas, gas_price=gas_price)
        return self._finish(self.wait(pending, timeout=timeout, cancel=cancel))

    def deploy(
        self,
        bytecode: HexLike,
        constructor_types: Sequence[AbiType] = (),
        args: Sequence[Any] = (),
        value: int = 0,
        gas: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> TxReceipt:
        """
        Deploy a contract and wait for the creation receipt.

        Returns:
            Receipt whose ``contract_address`` holds the new contract
        """
        creation = encode_constructor(bytecode, constructor_types, args)
        pending = self.send_transaction(None, creation, value=value, gas=gas)
        receipt = self._finish(self.wait(pending, timeout=timeout))
        self.logger.info(f"Contract deployed at {receipt.contract_address} in tx {receipt.tx_hash}")
        return receipt

    # ==================== Async variants ====================

    def call_async(self, *args: Any, **kwargs: Any) -> "Future[List[Any]]":
        """``call`` on the invoker's thread pool."""
        return self._get_executor().submit(self.call, *args, **kwargs)

    def transact_async(self, *args: Any, **kwargs: Any) -> "Future[TxReceipt]":
        """``transact`` on the invoker's thread pool."""
        return self._get_executor().submit(self.transact, *args, **kwargs)

    def wait_async(self, pending: PendingTransaction, **kwargs: Any) -> "Future[PendingTransaction]":
        return self._get_executor().submit(self.wait, pending, **kwargs)

    def close(self) -> None:
        """Shut down the thread pool created by this invoker."""
        with self._registry_lock:
            if self._executor is not None and self._owns_executor:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self) -> "Invoker":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ==================== Internals ====================

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._registry_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="ethbind-invoker"
                )
                self._owns_executor = True
            return self._executor

    def _account_lock(self, address: str) -> threading.Lock:
        key = address.lower()
        with self._registry_lock:
            if key not in self._account_locks:
                self._account_locks[key] = threading.Lock()
            return self._account_locks[key]

    def _reserve_nonce(self, sender: str) -> int:
        fetched = self.transport.get_transaction_count(sender, "pending")
        local = self._next_nonce.get(sender)
        return fetched if local is None else max(fetched, local)

    def _forget_nonce(self, sender: str) -> None:
        self._next_nonce.pop(sender, None)

    def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.transport.chain_id()
        return self._chain_id

    def _gas_price(self) -> int:
        if self.config.gas_price is not None:
            return self.config.gas_price
        return self.transport.gas_price()

    def _gas_limit(self, sender: str, tx: Dict[str, Any]) -> int:
        if self.config.gas_limit is not None:
            return self.config.gas_limit
        estimate_tx = {k: v for k, v in tx.items() if k in ("to", "data", "value")}
        estimate_tx["from"] = sender
        try:
            gas = int(self.transport.estimate_gas(estimate_tx) * GAS_ESTIMATE_BUFFER)
            self.logger.debug(f"Estimated gas: {gas}")
            return gas
        except (RevertError, TransportError) as e:
            self.logger.warning(f"Gas estimation failed, using default: {DEFAULT_GAS_LIMIT}. Error: {e}")
            return DEFAULT_GAS_LIMIT

    def _is_final(self, receipt: TxReceipt) -> bool:
        if self.config.confirmation_period <= 0:
            return True
        current = self.transport.block_number()
        return current - receipt.block_number >= self.config.confirmation_period

    def _settle(self, pending: PendingTransaction, receipt: TxReceipt) -> None:
        if receipt.status_known:
            succeeded = receipt.succeeded
            reason = None if succeeded else self._replay_revert_reason(pending, receipt)
        else:
            succeeded, reason = self._infer_outcome(pending, receipt)

        pending.receipt = receipt
        pending.transition(TxState.MINED)
        if succeeded:
            pending.transition(TxState.CONFIRMED)
            self.logger.info(f"Transaction {pending.tx_hash} confirmed in block {receipt.block_number}")
            return

        pending.revert_reason = reason
        pending.transition(TxState.REVERTED)
        self.logger.warning(
            f"Transaction {pending.tx_hash} reverted in block {receipt.block_number}"
            + (f": {pending.revert_reason}" if pending.revert_reason else "")
        )

    def _infer_outcome(self, pending: PendingTransaction, receipt: TxReceipt) -> Tuple[bool, Optional[str]]:
        """
        Outcome of a transaction whose receipt carries no ``status`` field.

        Creations succeeded if code exists at the new address; calls are
        replayed at the mined block.

        Raises:
            InvocationError: If the handle has no call data to replay
            TransportError: If the node could not be asked
        """
        self.logger.warning(f"Receipt for {pending.tx_hash} has no status field, inferring the outcome")
        if receipt.contract_address is not None:
            code = self.transport.get_code(receipt.contract_address, receipt.block_number)
            return bool(code), None
        if pending.to is None or not pending.call_data:
            raise InvocationError(
                f"Receipt for {pending.tx_hash} has no status and the transaction cannot be replayed"
            )
        error = self._replay(pending, receipt)
        if error is not None:
            return False, error.reason
        return True, None

    def _replay(self, pending: PendingTransaction, receipt: TxReceipt) -> Optional[RevertError]:
        # The receipt has no return data; re-run the call at the mined block
        tx: Dict[str, Any] = {"to": pending.to, "data": to_hex(pending.call_data)}
        if pending.sender:
            tx["from"] = pending.sender
        if pending.value:
            tx["value"] = pending.value
        try:
            self.transport.call(tx, receipt.block_number)
        except RevertError as e:
            return e
        return None

    def _replay_revert_reason(self, pending: PendingTransaction, receipt: TxReceipt) -> Optional[str]:
        if pending.to is None or not pending.call_data:
            return None
        try:
            error = self._replay(pending, receipt)
        except TransportError as e:
            self.logger.debug(f"Could not replay {pending.tx_hash} for a revert reason: {e}")
            return None
        return error.reason if error is not None else None

    def _finish(self, pending: PendingTransaction) -> TxReceipt:
        if pending.reverted:
            reason = pending.revert_reason
            raise RevertError(
                f"Transaction {pending.tx_hash} reverted" + (f": {reason}" if reason else ""),
                reason=reason,
                tx_hash=pending.tx_hash,
                status=pending.receipt.status if pending.receipt else 0
            )
        if pending.timed_out:
            raise TransactionTimeoutError(pending.tx_hash, pending.attempts)
        return pending.receipt
