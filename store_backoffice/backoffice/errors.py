"""
Error kinds raised by the back-office services.

Views turn any of these into ``{"success": false, "error": {...}}`` with the
matching HTTP status; anything else is left to Django. Unauthenticated
requests never reach the services: ``login_required`` answers them with a
302 redirect to the login page, not a JSON error body.
"""


class BackofficeError(Exception):
    kind = "error"
    status = 500

    def __init__(self, message, *, field=None, object_id=None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.object_id = object_id

    def as_dict(self):
        data = {"kind": self.kind, "message": self.message}
        if self.field:
            data["field"] = self.field
        if self.object_id is not None:
            data["id"] = str(self.object_id)
        return data


class ValidationError(BackofficeError):
    kind = "validation"
    status = 400


class NotFoundError(BackofficeError):
    kind = "not_found"
    status = 404


class ConflictError(BackofficeError):
    kind = "conflict"
    status = 409


class PersistenceError(BackofficeError):
    kind = "persistence"
    status = 500
