"""Domain exceptions for the custody bounded context.

These exceptions are expected, caller-facing outcomes of custody
operations. They are raised by aggregates, application services and
repositories, and mapped to HTTP status codes by the presentation layer.
"""


class CustodyError(Exception):
    """Base class for all custody errors."""

    pass


class NotFoundError(CustodyError):
    """Raised when a key, assignment or delegation does not exist."""

    pass


class ConflictError(CustodyError):
    """Raised when a uniqueness invariant would be violated.

    Covers a key that already has an outstanding assignment, a duplicate
    active delegation, and delegating without an active hold.
    """

    pass


class InvalidStateError(CustodyError):
    """Raised when an operation is not valid from the current state.

    Includes second attempts at terminal transitions and stale writes that
    lost a compare-and-swap race, so callers can detect outdated requests.
    """

    pass


class ValidationError(CustodyError):
    """Raised for malformed input such as a non-positive duration."""

    pass


class PermissionDeniedError(CustodyError):
    """Raised when a principal lacks the capability for an operation.

    For example, a delegate whose grant does not carry the permission bit
    for the requested handover action.
    """

    pass


class ProofError(CustodyError):
    """Base class for handover proof verification failures."""

    pass


class MalformedProofError(ProofError):
    """Raised when a proof token cannot be parsed."""

    pass


class ExpiredProofError(ProofError):
    """Raised when a proof token is presented after its expiry."""

    pass


class ProofMismatchError(ProofError):
    """Raised when a proof token was minted for another key, holder or action."""

    pass


class NotificationDeliveryError(CustodyError):
    """Raised by notifiers when a reminder could not be delivered."""

    pass


class StorageError(CustodyError):
    """Raised when the persistence layer fails unexpectedly.

    Wraps driver errors so raw persistence exceptions never reach callers.
    """

    pass
