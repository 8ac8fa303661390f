"""
Transaction signers.

Signing is delegated: the invoker only needs an object with an ``address``
and a ``sign_transaction`` method returning raw signed bytes. ``LocalSigner``
wraps an ``eth_account`` key for local use and tests.
"""
import logging
from typing import Any, Dict, Protocol, Union, runtime_checkable

from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


@runtime_checkable
class Signer(Protocol):
    """Protocol for custom signers"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw signed transaction"""
        ...


class LocalSigner:
    """Signer backed by a private key held in memory."""

    def __init__(self, private_key: Union[str, bytes]):
        """
        Args:
            private_key: secp256k1 private key, hex encoded or raw bytes
        """
        self._account: LocalAccount = Account.from_key(private_key)
        self.address = self._account.address

    @classmethod
    def from_keyfile(cls, path: str, password: str) -> "LocalSigner":
        """
        Load a signer from an encrypted JSON keystore file.

        Args:
            path: Keystore file path
            password: Keystore password
        """
        with open(path, "r", encoding="utf-8") as f:
            keyfile = f.read()
        key = Account.decrypt(keyfile, password)
        logger.debug(f"Loaded keystore {path}")
        return cls(bytes(key))

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(transaction_dict)
        raw = getattr(signed, "raw_transaction", None)
        if raw is None:
            raw = signed.rawTransaction
        return bytes(raw)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address!r})"
