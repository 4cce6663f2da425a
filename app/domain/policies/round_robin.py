"""RoundRobinPolicy — deterministic cyclic agent selection."""

from __future__ import annotations

from app.domain.entities.agent import Agent


def pick_next(candidates: list[Agent], last_agent_id: int | None) -> Agent:
    """Pick the agent that follows the cursor in a stable rotation.

    1. Sort candidates by id so the rotation order never depends on input order.
    2. If the cursor's agent is in the list, return the one after it (wrapping).
    3. Otherwise (no cursor yet, or the agent left the pool) start from the first.

    Args:
        candidates: non-empty list of eligible agents.
        last_agent_id: the rule's cursor, i.e. the previously assigned agent.

    Raises:
        ValueError: if candidates list is empty.
    """
    if not candidates:
        raise ValueError("Cannot pick from an empty candidate list")

    ordered = sorted(candidates, key=lambda a: a.id)
    ids = [a.id for a in ordered]

    if last_agent_id in ids:
        index = (ids.index(last_agent_id) + 1) % len(ordered)
    else:
        index = 0

    return ordered[index]
