"""Port interface for department persistence."""

from abc import ABC, abstractmethod

from app.domain.entities.department import Department


class DepartmentRepository(ABC):
    @abstractmethod
    async def save(self, department: Department) -> Department:
        ...

    @abstractmethod
    async def get_by_id(self, department_id: int) -> Department | None:
        ...

    @abstractmethod
    async def get_all(self) -> list[Department]:
        ...
