"""Error taxonomy for the dispatch engine."""


class DispatchError(Exception):
    """Base class for all dispatch engine errors."""


class ValidationError(DispatchError):
    """Missing or malformed input. No state was changed."""


class NotFoundError(DispatchError):
    """A referenced worker, group, task or report does not exist."""


class ConflictError(DispatchError):
    """A concurrent operation already won the race (e.g. group already dispatched)."""


class ExternalServiceError(DispatchError):
    """The route optimizer or a notification channel could not be reached."""
