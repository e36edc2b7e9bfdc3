class ClipIntelError(Exception):
    """Base class for errors raised by the intelligence engine."""


class InvalidURL(ClipIntelError, ValueError):
    """The input could not be parsed into scheme, host and path."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class EngineNotReady(ClipIntelError):
    """An operation was invoked before the engine reached the ready state."""


class EngineInitializationError(ClipIntelError):
    """A sub-component failed while the engine was initializing."""


class CollaboratorError(ClipIntelError):
    """An external collaborator failed or timed out."""

    def __init__(self, collaborator: str, message: str = ""):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}" if message else collaborator)
