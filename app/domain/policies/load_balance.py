"""LoadBalancePolicy — least-loaded agent selection."""

from __future__ import annotations

from app.domain.entities.agent import Agent


def pick_least_loaded(candidates: list[Agent]) -> Agent:
    """Return the agent with the fewest open+pending tickets.

    Agents that are at their ``max_load`` are skipped, unless every candidate
    is at capacity, in which case all of them compete. Ties are broken by
    agent id ascending.

    Raises:
        ValueError: if candidates list is empty.
    """
    if not candidates:
        raise ValueError("Cannot pick from an empty candidate list")

    pool = [a for a in candidates if a.has_capacity()] or candidates
    return min(pool, key=lambda a: (a.current_open_ticket_count, a.id))
