class LendingError(Exception):
    """Base class for workflow failures reported back to staff."""


class NotFoundError(LendingError):
    pass


class BookNotFound(NotFoundError):
    pass


class RequestNotFound(NotFoundError):
    pass


class MemberNotFound(NotFoundError):
    pass


class InvalidTransitionError(LendingError):
    """The request is not in a state that allows the operation."""


class PenaltyUnpaidError(LendingError):
    """Return approval refused until the penalty is paid."""


class ImmutableRecordError(LendingError):
    pass
