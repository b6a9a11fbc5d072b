"""
Marketplace error taxonomy.

Every error is raised before any state is committed, so a failed call
leaves jobs, participants, escrow and the audit trail untouched.
Handlers turn these into API Gateway responses using ``status_code``.
"""


class MarketplaceError(Exception):
    """Base exception for all rejected marketplace operations."""
    code = 'MarketplaceError'
    status_code = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {'error': self.code, 'message': self.message}


class InvalidInput(MarketplaceError):
    """Malformed arguments: empty text, out-of-range rating, bad payment."""
    code = 'InvalidInput'


class Unauthorized(MarketplaceError):
    """Caller lacks the role required for this job."""
    code = 'Unauthorized'
    status_code = 403


class NotFound(MarketplaceError):
    """Job or account does not exist."""
    code = 'NotFound'
    status_code = 404


class NotRegistered(NotFound):
    code = 'NotRegistered'


class AlreadyRegistered(MarketplaceError):
    code = 'AlreadyRegistered'
    status_code = 409


class AlreadyAssigned(MarketplaceError):
    code = 'AlreadyAssigned'
    status_code = 409


class AlreadyCompleted(MarketplaceError):
    code = 'AlreadyCompleted'
    status_code = 409


class AlreadyRated(MarketplaceError):
    code = 'AlreadyRated'
    status_code = 409


class AlreadyPaid(MarketplaceError):
    code = 'AlreadyPaid'
    status_code = 409


class DuplicateApplication(MarketplaceError):
    code = 'DuplicateApplication'
    status_code = 409


class SelfApplication(MarketplaceError):
    """The posting client tried to apply for its own job."""
    code = 'SelfApplication'


class NotAnApplicant(MarketplaceError):
    code = 'NotAnApplicant'


class InvalidState(MarketplaceError):
    """Job is not in the state the operation requires."""
    code = 'InvalidState'
    status_code = 409


class NotCompleted(InvalidState):
    code = 'NotCompleted'


class NotAssigned(InvalidState):
    code = 'NotAssigned'


class NotDisputed(InvalidState):
    code = 'NotDisputed'


class Disputed(MarketplaceError):
    """Job is frozen by an open or resolved dispute."""
    code = 'Disputed'
    status_code = 409


class EscrowMismatch(MarketplaceError):
    """Funds attached to a posting differ from the declared payment."""
    code = 'EscrowMismatch'


class TransferFailed(MarketplaceError):
    """The custody ledger could not move the funds."""
    code = 'TransferFailed'
    status_code = 502


class ConcurrentUpdate(MarketplaceError):
    """A conditional write lost a race; the caller may retry."""
    code = 'ConcurrentUpdate'
    status_code = 409


class Busy(ConcurrentUpdate):
    """The per-job lock could not be acquired in time."""
    code = 'Busy'
