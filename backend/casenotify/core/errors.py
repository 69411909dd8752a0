"""Domain exceptions raised by the notification engine.

Each one derives from the builtin the rest of the code already catches, so a
router written as ``except ValueError`` keeps working for bad requests.
"""


class BadRequestError(ValueError):
    """Invalid input: missing fields, unknown enum values, bad scheduling."""


class UnauthorizedError(PermissionError):
    """The caller's role or identity does not allow the operation."""


class NotFoundError(LookupError):
    """The addressed notification does not exist or was soft-deleted."""
