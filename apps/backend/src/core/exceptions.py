class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class MetadataUnavailableError(DomainError):
    """Raised when workspace metadata cannot be read or stored."""

    pass


class UsageLimitExceededError(DomainError):
    """Raised when a user has spent their daily token budget."""

    def __init__(self, user_id: str, limit: int) -> None:
        super().__init__(f"Daily token limit of {limit} exceeded")
        self.user_id = user_id
        self.limit = limit
