"""Credential pool - round-robin provider keys with permanent invalidation.

Shared by every concurrent generation. Cursor advancement and invalidation
happen under one lock, so consecutive draws hand out distinct credentials
until the valid set has been cycled once.
"""

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Opaque provider secret and its fixed position in the pool."""

    position: int
    secret: str = field(repr=False)

    @property
    def masked(self) -> str:
        """Log-safe rendering of the secret."""
        if len(self.secret) <= 8:
            return f"#{self.position}:****"
        return f"#{self.position}:{self.secret[:4]}...{self.secret[-4:]}"


@dataclass(frozen=True)
class PoolStatus:
    """Observability snapshot of the pool."""

    total: int
    valid: int
    invalid: int


class CredentialPool:
    """Round-robin pool over a fixed, ordered list of credentials."""

    def __init__(self, secrets: list[str]) -> None:
        """Initialize pool.

        Args:
            secrets: Provider secrets in rotation order
        """
        self._credentials = tuple(Credential(position=i, secret=s) for i, s in enumerate(secrets))
        self._invalid: set[int] = set()
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._credentials)

    def next(self) -> Credential | None:
        """Draw the next valid credential.

        Returns:
            The first valid credential at or after the cursor within one full
            cycle, or None when every credential has been invalidated.
        """
        with self._lock:
            size = len(self._credentials)
            for offset in range(size):
                position = (self._cursor + offset) % size
                if position not in self._invalid:
                    self._cursor = (position + 1) % size
                    return self._credentials[position]
            return None

    def invalidate(self, credential: Credential) -> bool:
        """Permanently exclude a credential. Idempotent.

        Returns:
            True if this call changed the credential's state
        """
        with self._lock:
            if credential.position in self._invalid:
                return False
            self._invalid.add(credential.position)
            remaining = len(self._credentials) - len(self._invalid)

        logger.warning(
            f"Credential {credential.masked} invalidated; {remaining} valid credential(s) remain"
        )
        return True

    def is_exhausted(self) -> bool:
        """Return True when no valid credential remains."""
        with self._lock:
            return len(self._invalid) >= len(self._credentials)

    def status(self) -> PoolStatus:
        """Return total/valid/invalid counts."""
        with self._lock:
            invalid = len(self._invalid)
            return PoolStatus(
                total=len(self._credentials),
                valid=len(self._credentials) - invalid,
                invalid=invalid,
            )
