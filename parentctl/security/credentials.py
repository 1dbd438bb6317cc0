"""Parental password guard.

Stores a single salted PBKDF2-HMAC-SHA256 key as `hex(salt):hex(key)`.
The existence of that file is the "password configured" flag.

Plaintext passwords passed as bytearray are zeroed after use on every exit
path. A str cannot be cleared in place; its encoded copy is.
"""

import hashlib
import hmac
import logging
import os
import secrets
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

PasswordInput = Union[str, bytes, bytearray]

KDF_HASH = "sha256"
DEFAULT_ITERATIONS = 120_000
DEFAULT_KEY_LENGTH = 32  # bytes
DEFAULT_SALT_LENGTH = 16  # bytes


class GuardOutcome(str, Enum):
    UNGUARDED = "unguarded"  # No password configured, action ran
    GRANTED = "granted"  # Password verified, action ran
    DENIED = "denied"  # Wrong password, action did not run
    CANCELLED = "cancelled"  # No password supplied, action did not run


@dataclass
class GuardResult:
    """Outcome of a guarded action and its return value, if it ran."""

    outcome: GuardOutcome
    value: Any = None

    @property
    def ran(self) -> bool:
        return self.outcome in (GuardOutcome.UNGUARDED, GuardOutcome.GRANTED)


def _to_buffer(password: PasswordInput) -> bytearray:
    if isinstance(password, str):
        return bytearray(password.encode("utf-8"))
    if isinstance(password, bytearray):
        return password
    return bytearray(password)


def _wipe(buffer: bytearray) -> None:
    for index in range(len(buffer)):
        buffer[index] = 0


class CredentialGuard:
    """Hashes, stores and verifies the parental password."""

    def __init__(
        self,
        record_path: Path,
        iterations: int = DEFAULT_ITERATIONS,
        key_length: int = DEFAULT_KEY_LENGTH,
        salt_length: int = DEFAULT_SALT_LENGTH,
    ) -> None:
        """Initialize the guard.

        Args:
            record_path: File holding the salt:key record
            iterations: PBKDF2 iteration count
            key_length: Derived key length in bytes
            salt_length: Random salt length in bytes
        """
        self.record_path = Path(record_path)
        self.iterations = iterations
        self.key_length = key_length
        self.salt_length = salt_length

    def is_configured(self) -> bool:
        return self.record_path.exists()

    def set_password(self, password: PasswordInput) -> None:
        """Replace any stored password with a new one.

        Args:
            password: New password; a bytearray is zeroed afterwards

        Raises:
            ValueError: If the password is empty
            OSError: If the record cannot be written
        """
        buffer = _to_buffer(password)
        try:
            if not buffer:
                raise ValueError("Password must not be empty")
            salt = secrets.token_bytes(self.salt_length)
            key = bytearray(self._derive(buffer, salt))
            try:
                self._write_record(f"{salt.hex()}:{key.hex()}")
            finally:
                _wipe(key)
        finally:
            _wipe(buffer)
        logger.info("Parental password updated")

    def verify_password(self, candidate: PasswordInput) -> bool:
        """Check a candidate password against the stored record.

        Args:
            candidate: Password attempt; a bytearray is zeroed afterwards

        Returns:
            False if no password is set, the record is malformed, or it mismatches

        Raises:
            OSError: If the record exists but cannot be read
        """
        buffer = _to_buffer(candidate)
        try:
            if not self.is_configured():
                return False

            record = self._read_record()
            if record is None:
                return False

            salt, expected = record
            actual = self._derive(buffer, salt)
            return hmac.compare_digest(expected, actual)
        finally:
            _wipe(buffer)

    def guard(
        self,
        action: Callable[[], Any],
        prompt: Callable[[], Optional[PasswordInput]],
    ) -> GuardResult:
        """Run `action` only if the password check passes.

        Args:
            action: Protected operation
            prompt: Returns the candidate password, or None if the user declined

        Returns:
            GuardResult describing whether the action ran
        """
        if not self.is_configured():
            return GuardResult(GuardOutcome.UNGUARDED, action())

        candidate = prompt()
        if candidate is None:
            logger.info("Protected action cancelled")
            return GuardResult(GuardOutcome.CANCELLED)

        if not self.verify_password(candidate):
            logger.warning("Incorrect parental password")
            return GuardResult(GuardOutcome.DENIED)

        return GuardResult(GuardOutcome.GRANTED, action())

    def _derive(self, password: bytearray, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(KDF_HASH, password, salt, self.iterations, dklen=self.key_length)

    def _read_record(self) -> Optional[tuple[bytes, bytes]]:
        stored = self.record_path.read_text(encoding="utf-8").strip()
        parts = stored.split(":")
        if len(parts) != 2:
            logger.warning(f"Malformed password record in {self.record_path}")
            return None
        try:
            return bytes.fromhex(parts[0]), bytes.fromhex(parts[1])
        except ValueError:
            logger.warning(f"Malformed password record in {self.record_path}")
            return None

    def _write_record(self, record: str) -> None:
        """Write the record atomically so a crash never leaves half a key."""
        self.record_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".pwd.", suffix=".tmp", dir=self.record_path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(record)
            tmp_path.replace(self.record_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
