"""
Domain exceptions for the price list service.

Every error raised by the stores, engines and scheduler inherits from
CennikiError. Each subclass carries the HTTP status it maps to, so the
exception handler in main.py stays a single function.
"""

from fastapi import status


class CennikiError(Exception):
    """Base exception for all price list service errors."""

    status_code = status.HTTP_400_BAD_REQUEST


class ProducerNotFoundError(CennikiError):
    """Raised when no producer is configured for a slug."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Producer '{slug}' not found")


class CatalogNotFoundError(CennikiError):
    """Raised when a producer has no catalog document on disk."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Catalog document for producer '{slug}' not found")


class CatalogFormatError(CennikiError):
    """Raised when a catalog document does not match the producer's layout.

    Example:
        >>> raise CatalogFormatError("Expected 'categories' to be an object")
    """

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(CennikiError):
    """Raised when a catalog write is based on a stale version.

    The caller read the document at version ``expected`` but somebody
    else has written ``actual`` in the meantime.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, slug: str, expected: str, actual: str):
        self.slug = slug
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Catalog '{slug}' was modified concurrently "
            f"(expected version {expected[:12]}, found {actual[:12]})"
        )


class ScheduledChangeNotFoundError(CennikiError):
    """Raised when a scheduled change id is unknown."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(f"Scheduled change '{change_id}' not found")


class InvalidStateTransitionError(CennikiError):
    """Raised when a non-pending scheduled change is patched, applied or deleted."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, change_id: str, current_status: str):
        self.change_id = change_id
        self.current_status = current_status
        super().__init__(
            f"Scheduled change '{change_id}' is '{current_status}', only pending changes can be modified"
        )


class SchedulerBusyError(CennikiError):
    """Raised when run_due is invoked while another run is still in progress."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self):
        super().__init__("Scheduled changes are already being applied")


class FileImportError(CennikiError):
    """Raised when an uploaded spreadsheet cannot be turned into a row table."""

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.status_code = status_code
        super().__init__(message)
