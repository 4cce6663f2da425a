"""Port interface for round-robin cursor persistence."""

from abc import ABC, abstractmethod
from collections.abc import Callable


class RoundRobinRepository(ABC):
    @abstractmethod
    async def get_cursor(self, rr_key: str) -> int | None:
        """Read the last assigned agent id for the key without locking."""
        ...

    @abstractmethod
    async def advance_cursor(
        self, rr_key: str, pick: Callable[[int | None], int | None]
    ) -> int | None:
        """Atomically read the cursor, call ``pick`` with it and store the result.

        ``pick`` returns the newly assigned agent id, or None to leave the
        cursor untouched. Must use row-level locking (SELECT ... FOR UPDATE)
        so concurrent assignments for the same rule serialize.
        """
        ...
