"""Domain exceptions raised across the routing and SLA components."""


class RoutingEngineError(Exception):
    """Base exception for all routing engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RuleConfigError(RoutingEngineError):
    """A rule's stored configuration could not be validated."""

    def __init__(self, rule_id: int | None, message: str):
        self.rule_id = rule_id
        super().__init__(f"Rule {rule_id}: {message}", {"rule_id": rule_id})


class PersistenceError(RoutingEngineError):
    """The backing store failed while reading or writing state."""


class TicketNotFoundError(RoutingEngineError):
    def __init__(self, ticket_id: int):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket {ticket_id} not found", {"ticket_id": ticket_id})
