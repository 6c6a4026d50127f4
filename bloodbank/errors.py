"""
Error taxonomy shared by the operations and the HTTP layer.

Every failure that reaches a client is one of these kinds and is rendered
as ``{"kind": ..., "message": ...}`` with the class's HTTP status.
"""


class ServiceError(Exception):
    kind = "Internal"
    status = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}


class Unauthenticated(ServiceError):
    kind = "Unauthenticated"
    status = 401
    default_message = "Authentication required"


class Forbidden(ServiceError):
    kind = "Forbidden"
    status = 403
    default_message = "You do not have permission to perform this action"


class InvalidInput(ServiceError):
    kind = "InvalidInput"
    status = 400
    default_message = "Invalid request body"


class UnknownOwner(ServiceError):
    kind = "UnknownOwner"
    status = 404
    default_message = "Donor does not exist"


class UnknownUnit(ServiceError):
    kind = "UnknownUnit"
    status = 404
    default_message = "Blood unit not found"


class DuplicateUnit(ServiceError):
    kind = "DuplicateUnit"
    status = 409
    default_message = "Blood unit is already registered"


class Internal(ServiceError):
    pass
