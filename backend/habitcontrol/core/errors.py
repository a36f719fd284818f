"""
Error taxonomy shared by the habit store, repositories and HTTP routes
"""

from typing import Optional


class HabitControlError(Exception):
    """Base class for every recoverable engine error"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HabitControlError):
    """User input failed a precondition; nothing was mutated"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthenticationRequired(HabitControlError):
    """A mutating operation was attempted without an active session"""

    def __init__(self, message: str = "An active session is required"):
        super().__init__(message)


class PersistenceError(HabitControlError):
    """The backing store rejected a read or write"""


class NotFoundError(HabitControlError):
    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier
