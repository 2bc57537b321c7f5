class WishkeeperError(Exception):
    """Base class for every error raised by wishkeeper."""


class ValidationError(WishkeeperError, ValueError):
    """Input rejected before any persistence call was made."""


class InvalidRange(WishkeeperError, IndexError):
    """Reorder indices fall outside the view they were computed against."""

    def __init__(self, index: int, size: int, label: str = "index") -> None:
        super().__init__(f"{label} {index} out of range for view of {size}")
        self.index = index
        self.size = size


class PersistenceError(WishkeeperError):
    """The record store call failed or timed out."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class AuthorizationError(WishkeeperError, PermissionError):
    """A protected operation was attempted without an authorized context."""


class MutationInFlight(WishkeeperError):
    """Another mutation on the same entity has not settled yet."""

    def __init__(self, key: str) -> None:
        super().__init__(f"mutation already in flight for {key}")
        self.key = key
