"""Exception types shared across the generation and rendering services."""


class FolioError(Exception):
    """Base class for all Folio service errors."""


class CompletionError(FolioError):
    """The completion service could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class RenderError(FolioError):
    """Rendering a document failed; a partial artifact may already have been written."""


class JobNotFoundError(FolioError):
    """No job record exists for the requested id (unknown or expired)."""


class GenerationBusyError(FolioError):
    """Every generation slot in this process is taken."""
