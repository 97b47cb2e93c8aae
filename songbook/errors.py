"""
Error kinds for the songbook service.

Every failure the service reports to a client is a ``SongbookError`` carrying
the HTTP status it maps to and a message that is safe to show. Routing and the
access checks hand these back as values; the catalog and the handlers raise
them. ``dispatch.error_response`` is the only place they become responses.
"""

from typing import Optional


class SongbookError(Exception):
    """Base class: an HTTP status plus a client-safe message."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(SongbookError):
    status_code = 400
    default_message = "You must provide a title and an artist information"


class SongNotFound(SongbookError):
    """Unknown song id. 404 on read routes; update/delete report it as 400."""

    status_code = 404

    def __init__(self, song_id: str, message: Optional[str] = None, status_code: Optional[int] = None):
        self.song_id = song_id
        super().__init__(message or f"Song '{song_id}' not found", status_code)


class NotFound(SongbookError):
    status_code = 404
    default_message = "Not Found"


class Unauthorized(SongbookError):
    status_code = 401
    default_message = "Unauthorized"


class MethodNotAllowed(SongbookError):
    status_code = 405
    default_message = "Method Not Allowed"


class StorageError(SongbookError):
    """File store or index write failure. Details go to the log, not the client."""

    status_code = 500
    default_message = "Internal storage error"


class IndexUpdateError(StorageError):
    """The song file was written but the search index could not be updated."""

    def __init__(self, song_id: str, message: Optional[str] = None):
        self.song_id = song_id
        super().__init__(message)


class IndexQueryError(SongbookError):
    status_code = 500

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid search query: {reason}")


class CommandNotSupported(SongbookError):
    status_code = 500

    def __init__(self, section: str, command: str):
        self.section = section
        self.command = command
        super().__init__(f"Command '{section}/{command}' is not supported")


class StartupError(RuntimeError):
    """The service cannot start (data root unusable)."""
