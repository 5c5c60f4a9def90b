"""
Custom exceptions for the standings, streak and ranking engine with
operator-friendly error messages.
"""

class EngineException(Exception):
    """Base exception for engine-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class InvalidStateError(EngineException):
    """Raised when a fight is not in the state an operation requires."""
    def __init__(self, fight_identifier: str, reason: str):
        super().__init__(
            f"Fight '{fight_identifier}' in invalid state: {reason}",
            f"Fight {fight_identifier} cannot be processed: {reason}"
        )
        self.fight_identifier = fight_identifier

class DataIntegrityError(EngineException):
    """Raised when fights, rosters or snapshots disagree with each other."""
    def __init__(self, details: str):
        super().__init__(
            f"Data integrity violation: {details}",
            "League data is inconsistent. Check the roster and fight records."
        )

class FightOrderError(DataIntegrityError):
    """Raised when a streak replay receives fights out of chronological order."""
    def __init__(self, fight_identifier: str, previous_identifier: str):
        super().__init__(
            f"fight '{fight_identifier}' arrived after '{previous_identifier}' "
            f"but precedes it chronologically"
        )
        self.fight_identifier = fight_identifier
        self.previous_identifier = previous_identifier

class NotFoundError(EngineException):
    """Raised when a referenced record does not exist."""
    def __init__(self, entity: str, identifier):
        super().__init__(
            f"{entity} '{identifier}' not found",
            f"{entity} {identifier} does not exist."
        )
        self.entity = entity
        self.identifier = identifier

class SnapshotConflictError(EngineException):
    """Raised when promoting a generation observes a different current version."""
    def __init__(self, kind: str, expected_version, actual_version):
        super().__init__(
            f"{kind} promotion conflict: expected current version {expected_version}, "
            f"found {actual_version}",
            f"Another {kind} calculation finished first. Please retry."
        )
        self.expected_version = expected_version
        self.actual_version = actual_version

class RankingInProgressError(EngineException):
    """Raised when another process holds the global ranking lock."""
    def __init__(self):
        super().__init__(
            "Global ranking calculation already in progress",
            "Global rankings are being recalculated. Please wait."
        )

class DatabaseError(EngineException):
    """Raised when database operations fail."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "Database error occurred. Please try again later."
        )
