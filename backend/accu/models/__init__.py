from .registry import Entity, User, Creditor, Project, USER_ROLES, PROJECT_METHODS, PROJECT_METHOD_TYPES
from .batches import (
    AccuBatch, ValuationLog, BatchNumberSequence,
    CLASSIFICATIONS, BATCH_STATUSES,
    BATCH_STATUS_ACTIVE, BATCH_STATUS_IMPAIRED, BATCH_STATUS_RECLASSIFIED, BATCH_STATUS_ON_LOAN,
)
from .loans import Loan, LOAN_STATUSES, LOAN_STATUS_ACTIVE, LOAN_STATUS_REPAID, LOAN_STATUS_DEFAULTED
from .reclassification import (
    ReclassificationRequest,
    RECLASS_STATUSES, RECLASS_STATUS_PENDING, RECLASS_STATUS_APPROVED, RECLASS_STATUS_REJECTED,
)
from .market import MarketPrice
from .ledger import LedgerEvent

__all__ = [
    'Entity', 'User', 'Creditor', 'Project',
    'AccuBatch', 'ValuationLog', 'BatchNumberSequence',
    'Loan', 'ReclassificationRequest', 'MarketPrice', 'LedgerEvent',
    'USER_ROLES', 'PROJECT_METHODS', 'PROJECT_METHOD_TYPES',
    'CLASSIFICATIONS', 'BATCH_STATUSES',
    'BATCH_STATUS_ACTIVE', 'BATCH_STATUS_IMPAIRED', 'BATCH_STATUS_RECLASSIFIED', 'BATCH_STATUS_ON_LOAN',
    'LOAN_STATUSES', 'LOAN_STATUS_ACTIVE', 'LOAN_STATUS_REPAID', 'LOAN_STATUS_DEFAULTED',
    'RECLASS_STATUSES', 'RECLASS_STATUS_PENDING', 'RECLASS_STATUS_APPROVED', 'RECLASS_STATUS_REJECTED',
]
