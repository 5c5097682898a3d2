"""Error taxonomy for battle and matchmaking operations.

Services raise these; the app-wide error handler renders them as
``{"error": ..., "code": ..., "retryable": ...}`` with the class status code.
``retryable`` tells the client whether repeating the same request is safe
(idempotent operations) or whether it has to reset local state first.
"""


class ArenaError(Exception):
    """Base exception for request-level failures."""
    status_code = 400
    code = 'error'
    retryable = False

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code, 'retryable': self.retryable}
        payload.update(self.details)
        return payload


class ValidationError(ArenaError):
    """Malformed or out-of-range input."""
    status_code = 400
    code = 'validation_error'


class AuthorizationError(ArenaError):
    """Caller may not act on this resource."""
    status_code = 403
    code = 'forbidden'


class NotAParticipant(AuthorizationError):
    code = 'not_a_participant'


class NotFoundError(ArenaError):
    status_code = 404
    code = 'not_found'


class StateError(ArenaError):
    """Operation is not valid in the current match/round state."""
    status_code = 409
    code = 'invalid_state'


class NoCommitmentFound(StateError):
    code = 'no_commitment'


class CommitMismatch(ArenaError):
    """Revealed action does not match the stored commitment.

    The caller must commit again for this turn; repeating the same reveal
    can never succeed.
    """
    status_code = 409
    code = 'commit_mismatch'


class ConcurrencyConflict(ArenaError):
    """Lost a race for a write; re-fetch state instead of repeating the write."""
    status_code = 409
    code = 'concurrency_conflict'
    retryable = True
