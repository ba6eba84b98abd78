"""Error taxonomy for the contract migration engine.

Every error carries a stable ``kind`` used in result error entries and in the
``error_kind`` column of ``migration_records``.
"""
from __future__ import annotations

from decimal import Decimal


class MigrationError(Exception):
    """Base class for per-contract and infrastructure migration errors."""

    kind = 'migration_error'
    retryable = False

    def __init__(self, message: str, legacy_id: int | None = None):
        super().__init__(message)
        self.legacy_id = legacy_id


class NotFoundError(MigrationError):
    """Legacy contract id does not exist in the legacy store."""

    kind = 'not_found'


class ReconciliationError(MigrationError):
    """Installment schedule does not add up to the contract total."""

    kind = 'reconciliation'

    def __init__(self, legacy_id: int | None, expected: Decimal, actual: Decimal, tolerance: Decimal):
        self.expected = expected
        self.actual = actual
        self.delta = expected - actual
        self.tolerance = tolerance
        super().__init__(
            f'Installments sum {actual} does not match contract total {expected} '
            f'(delta {self.delta}, tolerance {tolerance})',
            legacy_id,
        )


class MalformedScheduleError(MigrationError):
    """Legacy installment schedule is structurally invalid."""

    kind = 'malformed_schedule'


class AlreadyMigratedError(MigrationError):
    """Legacy contract already has a migrated target; reported as skipped."""

    kind = 'already_migrated'


class ExcludedContractError(MigrationError):
    """Legacy contract deliberately left out of migration, recorded as skipped."""

    kind = 'excluded'


class SourceUnavailableError(MigrationError):
    """Legacy store cannot be reached."""

    kind = 'source_unavailable'
    retryable = True


class StoreUnavailableError(MigrationError):
    """Target store cannot be reached."""

    kind = 'store_unavailable'
    retryable = True


class MigrationCancelledError(MigrationError):
    """Batch was cancelled before this contract started."""

    kind = 'cancelled'


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, MigrationError):
        return exc.kind
    return 'unexpected'


RETRYABLE_KINDS = frozenset({SourceUnavailableError.kind, StoreUnavailableError.kind})
