class LifecycleError(Exception):
    kind = "LifecycleError"
    http_status = 400

    def __init__(self, message=None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self):
        return {"ok": False, "error": self.kind, "message": self.message}


class InvalidState(LifecycleError):
    kind = "InvalidState"
    http_status = 409


class BidNotFound(LifecycleError):
    kind = "BidNotFound"
    http_status = 404


class DuplicateBid(LifecycleError):
    kind = "DuplicateBid"
    http_status = 409


class PaymentRequired(LifecycleError):
    kind = "PaymentRequired"
    http_status = 402


class PaymentDisputed(LifecycleError):
    kind = "PaymentDisputed"
    http_status = 409


class MissingNotes(LifecycleError):
    kind = "MissingNotes"
    http_status = 400


class InvalidConfiguration(LifecycleError):
    kind = "InvalidConfiguration"
    http_status = 422


class ConcurrentModification(LifecycleError):
    kind = "ConcurrentModification"
    http_status = 409


class ChapterNotFound(LifecycleError):
    kind = "ChapterNotFound"
    http_status = 404


class PaymentNotFound(LifecycleError):
    kind = "PaymentNotFound"
    http_status = 404


class InvalidInput(LifecycleError):
    kind = "InvalidInput"
    http_status = 400
