"""Error kinds reported by the service layer.

Routes never catch these; the handlers registered in ``app.main`` turn them
into ``{"success": false, "kind": ..., "detail": ...}`` responses.
"""


class DomainError(Exception):
    kind = "Internal"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(DomainError):
    kind = "NotFound"
    status_code = 404
    default_message = "not found"


class Conflict(DomainError):
    kind = "Conflict"
    status_code = 409
    default_message = "conflict"


class InvalidState(DomainError):
    kind = "InvalidState"
    status_code = 409
    default_message = "operation not allowed in the current state"


class ValidationError(DomainError):
    kind = "ValidationError"
    status_code = 400
    default_message = "invalid input"


class StorageError(DomainError):
    kind = "StorageError"
    status_code = 502
    default_message = "document storage is unavailable"


class Internal(DomainError):
    pass


# Lookups
class UserNotFound(NotFound):
    default_message = "User not found"


class GuideNotFound(NotFound):
    default_message = "Guide not found"


class DocumentNotFound(NotFound):
    default_message = "Document not found"


class BookingNotFound(NotFound):
    default_message = "Booking not found"


class PackageNotFound(NotFound):
    default_message = "Package not found"


# Conflicts
class DuplicateEmail(Conflict):
    default_message = "Email already exists"


class DuplicateDocumentType(Conflict):
    default_message = "Document of this type already uploaded"


class AlreadyAssigned(Conflict):
    default_message = "Booking already has a guide assigned"


class DateConflict(Conflict):
    default_message = "Guide is already assigned to another booking on this date"


# State
class AlreadyApproved(InvalidState):
    default_message = "Guide already approved"


class NoDocuments(InvalidState):
    default_message = "Guide must upload documents before approval"


class GuideNotApproved(InvalidState):
    default_message = "Guide is not approved or active"


class BookingNotConfirmable(InvalidState):
    default_message = "Only confirmed bookings accept a guide assignment"


class NotAssigned(InvalidState):
    default_message = "No guide assigned to this booking"


class AccountBlocked(InvalidState):
    default_message = "Account is blocked"
