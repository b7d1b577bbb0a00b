
class PustakError(Exception):
    code = "error"
    http_status = 500


class ValidationError(PustakError):
    code = "validation_error"
    http_status = 400

class NotFoundError(PustakError):
    code = "not_found"
    http_status = 404

class ConflictError(PustakError):
    code = "conflict"
    http_status = 409


class TitleNotFoundError(NotFoundError):
    code = "title_not_found"

class MemberNotFoundError(NotFoundError):
    code = "member_not_found"

class LoanNotFoundError(NotFoundError):
    code = "loan_not_found"

class NotificationNotFoundError(NotFoundError):
    code = "notification_not_found"


class NoCopiesAvailableError(ConflictError):
    code = "no_copies_available"

class BorrowLimitExceededError(ConflictError):
    code = "borrow_limit_exceeded"

class AlreadyReturnedError(ConflictError):
    code = "already_returned"

class MemberInactiveError(ConflictError):
    code = "member_inactive"

class TitleHasActiveLoansError(ConflictError):
    code = "title_has_active_loans"

class StaleTitleError(ConflictError):
    code = "stale_title"


class TransientStorageError(PustakError):
    code = "storage_error"
    http_status = 503

class StorageUnavailableError(PustakError):
    code = "storage_unavailable"
    http_status = 503

class SchemaMismatchError(PustakError):
    code = "schema_mismatch"
