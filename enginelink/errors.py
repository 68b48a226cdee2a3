"""Exceptions raised by the engine session and its components."""


class EngineError(Exception):
    """Base class for every error surfaced to callers of the session."""


class InitializationTimeout(EngineError):
    """The UCI handshake did not complete within the configured limit."""


class EngineCrashed(EngineError):
    """The engine process failed or stopped responding.

    This is permanent for the session: every queued, running and future
    request fails with it.
    """


class ResponseTimeout(EngineError):
    """A single request exceeded its deadline. The session stays usable."""


class InvalidConfiguration(EngineError, ValueError):
    """An option or request argument is outside its allowed range."""


class InvalidPosition(EngineError, ValueError):
    """A FEN string was rejected before being sent to the engine."""
