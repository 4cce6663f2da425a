"""Agent entity — a support employee who handles tickets."""

from dataclasses import dataclass, field

from app.domain.value_objects.enums import PresenceStatus


@dataclass
class Agent:
    id: int | None
    name: str
    department_id: int | None
    skills: set[str] = field(default_factory=set)
    is_active: bool = True
    presence_status: PresenceStatus = PresenceStatus.OFFLINE
    # Derived from open/pending tickets when the agent is loaded, never stored.
    current_open_ticket_count: int = 0
    max_load: int | None = None

    def has_skills(self, required: set[str] | frozenset[str]) -> bool:
        return set(required).issubset(self.skills)

    def has_capacity(self) -> bool:
        if self.max_load is None:
            return True
        return self.current_open_ticket_count < self.max_load

    def is_routable(self) -> bool:
        """Only active agents who are online receive new tickets."""
        return self.is_active and self.presence_status == PresenceStatus.ONLINE
