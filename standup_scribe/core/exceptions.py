from typing import Optional


class StandupError(Exception):
    """Base error for the standup core; ``code`` is stable for API mapping."""

    code = "STANDUP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code:
            self.code = code


class ConfigurationError(StandupError):
    code = "CONFIG_ERROR"


class WorkspaceNotConfiguredError(ConfigurationError):
    def __init__(self, workspace_id: str) -> None:
        super().__init__(f"Workspace {workspace_id} is not configured")
        self.workspace_id = workspace_id


class ValidationError(StandupError):
    code = "VALIDATION_ERROR"


class InvalidAnswerError(ValidationError):
    code = "INVALID_ANSWER"


class NotAuthorizedError(StandupError):
    code = "NOT_AUTHORIZED"


class SessionExpiredError(StandupError):
    code = "SESSION_EXPIRED"

    def __init__(self, message: str = "Session expired. Please start a new standup.") -> None:
        super().__init__(message)


class NotFoundError(StandupError):
    code = "NOT_FOUND"


class RunNotFoundError(NotFoundError):
    code = "RUN_NOT_FOUND"


class RosterMemberNotFoundError(NotFoundError):
    code = "MEMBER_NOT_FOUND"


class InvalidStateError(StandupError):
    code = "INVALID_STATE"


class RunAlreadyClosedError(InvalidStateError):
    code = "RUN_CLOSED"


class RunNotOpenError(InvalidStateError):
    code = "RUN_NOT_OPEN"


class AlreadySubmittedError(InvalidStateError):
    code = "ALREADY_SUBMITTED"


class DeliveryError(StandupError):
    code = "DELIVERY_ERROR"

    def __init__(self, message: str, destination: str) -> None:
        super().__init__(message)
        self.destination = destination
