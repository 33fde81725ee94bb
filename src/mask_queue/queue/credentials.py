"""Round-robin credential rotation with per-credential cooldown."""

import logging
import os
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from .errors import NoCredentialsAvailable
from .models import Credential

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV_VARS = (
    "REPLICATE_API_TOKEN",
    "REPLICATE_API_TOKEN_2",
    "REPLICATE_API_TOKEN_3",
)


def tokens_from_env(env_vars: Iterable[str] = DEFAULT_TOKEN_ENV_VARS) -> List[str]:
    """Collect non-empty tokens from the given environment variables, in order."""
    tokens = []
    for name in env_vars:
        value = os.getenv(name)
        if value:
            tokens.append(value)
    return tokens


class CredentialRotator:
    """Selects a usable credential from a fixed pool.

    Policy:
    - Single credential: always returned, no cooldown enforced
    - Otherwise scan round-robin from the cursor and return the first
      credential idle for longer than the cooldown, marking it used
    - If every credential is cooling down, return the first one anyway;
      forward progress is preferred over stalling, at the risk of a 429

    Not safe for concurrent callers: last_used_at is read and written
    without synchronization, which is fine under the single processing loop.
    """

    def __init__(
        self,
        tokens: Sequence[str],
        cooldown_s: float = 15.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._credentials = [Credential(token=token) for token in tokens]
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._credentials)

    def next(self) -> str:
        """Return a credential token.

        Raises:
            NoCredentialsAvailable: If the pool is empty
        """
        if not self._credentials:
            raise NoCredentialsAvailable("No segmentation credentials configured")

        if len(self._credentials) == 1:
            return self._credentials[0].token

        now = self._clock()
        for _ in range(len(self._credentials)):
            candidate = self._credentials[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._credentials)

            if self._is_cool(candidate, now):
                candidate.last_used_at = now
                return candidate.token

        logger.debug("All %d credentials cooling down, falling back to first", len(self))
        return self._credentials[0].token

    def last_used_at(self, token: str) -> Optional[datetime]:
        for credential in self._credentials:
            if credential.token == token:
                return credential.last_used_at
        return None

    def _is_cool(self, credential: Credential, now: datetime) -> bool:
        if credential.last_used_at is None:
            return True
        return (now - credential.last_used_at).total_seconds() > self.cooldown_s
