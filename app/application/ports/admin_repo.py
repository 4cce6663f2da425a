"""Port interface for looking up administrators."""

from abc import ABC, abstractmethod


class AdminRepository(ABC):
    @abstractmethod
    async def get_admin_ids(self) -> list[int]:
        """Ids of everyone who should hear about unassigned tickets."""
        ...
