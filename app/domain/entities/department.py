"""Department entity — a team with an optional SLA override."""

from dataclasses import dataclass


@dataclass
class Department:
    id: int | None
    name: str
    # Raw JSON text as stored; parsed by the SLA threshold resolver.
    sla_config: str | None = None
