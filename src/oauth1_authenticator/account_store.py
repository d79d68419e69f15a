"""Account persistence keyed by service id and username."""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import AccountStoreError, ConfigurationError
from .models import Account


class AccountStore(ABC):
    """Storage for :class:`Account` objects.

    An account is identified by the service id it was saved under plus its
    username; saving again with the same pair replaces it.
    """

    @abstractmethod
    async def find_accounts_for_service(self, service_id: str) -> list[Account]:
        """Return every account saved for the service."""

    @abstractmethod
    async def save(self, account: Account, service_id: str) -> None:
        """Save or replace the account."""

    @abstractmethod
    async def delete(self, account: Account, service_id: str) -> None:
        """Delete the account; missing accounts are ignored."""


class MemoryAccountStore(AccountStore):
    """In-process account storage, for embedding and tests."""

    def __init__(self) -> None:
        self._accounts: dict[str, dict[str, Account]] = {}

    async def find_accounts_for_service(self, service_id: str) -> list[Account]:
        return [
            account.model_copy(deep=True)
            for account in self._accounts.get(service_id, {}).values()
        ]

    async def save(self, account: Account, service_id: str) -> None:
        accounts = self._accounts.setdefault(service_id, {})
        accounts[account.username] = account.model_copy(deep=True)

    async def delete(self, account: Account, service_id: str) -> None:
        self._accounts.get(service_id, {}).pop(account.username, None)


class FileAccountStore(AccountStore):
    """Encrypted file-based account storage.

    Accounts are kept in a JSON file at the configured path. Each account is
    serialized and encrypted with Fernet before it is written; the file is
    replaced atomically and readable by its owner only.
    """

    def __init__(self, storage_path: str, encryption_key: str | None) -> None:
        """Initialize the account store.

        Args:
            storage_path: Path to the account storage file (supports ~ expansion).
            encryption_key: URL-safe base64 Fernet key, see :meth:`generate_key`.

        Raises:
            ConfigurationError: If the encryption key is missing or malformed.
        """
        if not encryption_key:
            raise ConfigurationError("encryption_key must be provided")
        try:
            self._fernet = Fernet(encryption_key.encode("utf-8"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid encryption key: {str(e)}") from e

        self._storage_path = Path(os.path.expanduser(storage_path))
        self._ensure_directory()

    @staticmethod
    def generate_key() -> str:
        """Generate a new encryption key."""
        return Fernet.generate_key().decode("utf-8")

    def _ensure_directory(self) -> None:
        """Ensure the storage directory exists with secure permissions."""
        directory = self._storage_path.parent
        if not directory.exists():
            directory.mkdir(parents=True, mode=0o700)

    def _read_storage(self) -> dict[str, dict[str, str]]:
        """Read the storage file.

        Returns:
            Encrypted accounts by service id and username, or an empty dict if
            the file doesn't exist.

        Raises:
            AccountStoreError: If the file exists but cannot be read.
        """
        if not self._storage_path.exists():
            return {}
        try:
            with open(self._storage_path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise AccountStoreError(
                f"Cannot read account storage {self._storage_path}: {str(e)}"
            ) from e
        if not isinstance(data, dict):
            raise AccountStoreError(
                f"Cannot read account storage {self._storage_path}: not a JSON object"
            )
        return data.get("accounts", {})

    def _write_storage(self, accounts: dict[str, dict[str, str]]) -> None:
        """Write data to the storage file with secure permissions.

        Args:
            accounts: Encrypted accounts by service id and username.
        """
        self._ensure_directory()

        # Write to temp file first, then rename for atomicity
        temp_path = self._storage_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump({"accounts": accounts}, f, indent=2)

        # Owner read/write only
        os.chmod(temp_path, 0o600)

        temp_path.replace(self._storage_path)

    def _encrypt(self, account: Account) -> str:
        return self._fernet.encrypt(account.serialize().encode("utf-8")).decode("utf-8")

    def _decrypt(self, payload: str) -> Account:
        try:
            text = self._fernet.decrypt(payload.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise AccountStoreError(
                "Cannot decrypt stored account, was the encryption key changed?"
            ) from e
        return Account.deserialize(text)

    async def find_accounts_for_service(self, service_id: str) -> list[Account]:
        """Load the accounts saved for a service.

        Args:
            service_id: The service identifier.

        Returns:
            The decrypted accounts, possibly empty.
        """
        accounts = self._read_storage().get(service_id, {})
        return [self._decrypt(payload) for payload in accounts.values()]

    async def save(self, account: Account, service_id: str) -> None:
        """Save an account.

        Args:
            account: The account to save.
            service_id: The service identifier.
        """
        accounts = self._read_storage()
        accounts.setdefault(service_id, {})[account.username] = self._encrypt(account)
        self._write_storage(accounts)

    async def delete(self, account: Account, service_id: str) -> None:
        """Delete an account.

        Args:
            account: The account to delete (matched by username).
            service_id: The service identifier.
        """
        accounts = self._read_storage()
        service_accounts = accounts.get(service_id, {})
        if account.username in service_accounts:
            del service_accounts[account.username]
            if not service_accounts:
                del accounts[service_id]
            self._write_storage(accounts)
