"""Port interface for agent persistence."""

from abc import ABC, abstractmethod

from app.domain.entities.agent import Agent


class AgentRepository(ABC):
    @abstractmethod
    async def save(self, agent: Agent) -> Agent:
        ...

    @abstractmethod
    async def get_all(self) -> list[Agent]:
        """All agents with ``current_open_ticket_count`` computed at read time."""
        ...
