"""Exception hierarchy for CVChat."""


class CVChatError(Exception):
    """Base class for all CVChat errors."""


class InvalidInputError(CVChatError, ValueError):
    """Raised when a pure function receives malformed arguments."""


class EngineError(CVChatError):
    """Raised when an engine round-trip fails.

    Recoverable: the orchestrator may retry the query on another engine.
    """

    def __init__(self, message: str, engine: str | None = None) -> None:
        super().__init__(message)
        self.engine = engine


class EngineTimeoutError(EngineError):
    """Raised when an engine does not answer before its timeout."""


class AllEnginesFailedError(CVChatError):
    """Raised when every attempted engine failed for a single query."""

    def __init__(
        self,
        message: str,
        last_error: BaseException | None = None,
        errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.errors = dict(errors or {})


class ModelLoadFailureError(CVChatError):
    """Raised when an engine model could not be loaded after all retries."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts
