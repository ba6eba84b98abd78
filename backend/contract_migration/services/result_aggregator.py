from __future__ import annotations

from collections.abc import Iterable

from contract_migration.core.errors import RETRYABLE_KINDS, MigrationError, error_kind
from contract_migration.services.migration_types import (
    ContractOutcome,
    MigrationErrorEntry,
    MigrationResult,
    OutcomeStatus,
)


class MigrationResultAggregator:
    """Accumulates per-contract outcomes for one invocation. Errors keep processing order."""

    def __init__(self) -> None:
        self.contracts_migrated = 0
        self.installments_migrated = 0
        self.negotiations_created = 0
        self.contracts_skipped = 0
        self.contracts_failed = 0
        self.cancelled = False
        self.halted_by: str | None = None
        self.errors: list[MigrationErrorEntry] = []
        self._last_message = ''

    def add(self, outcome: ContractOutcome) -> None:
        self._last_message = outcome.message
        if outcome.status == OutcomeStatus.MIGRATED:
            self.contracts_migrated += 1
            self.installments_migrated += outcome.installments
            self.negotiations_created += outcome.negotiations
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.contracts_skipped += 1
        elif outcome.status == OutcomeStatus.FAILED:
            self.contracts_failed += 1
            entry = outcome.error or MigrationErrorEntry(outcome.legacy_id, 'unexpected', outcome.message)
            self.errors.append(entry)
            if entry.kind in RETRYABLE_KINDS:
                self.halted_by = entry.kind
        elif outcome.status == OutcomeStatus.CANCELLED:
            self.cancelled = True

    def add_batch_error(self, exc: BaseException) -> None:
        """Failure outside any single contract, e.g. the legacy listing itself is unreachable."""
        legacy_id = exc.legacy_id if isinstance(exc, MigrationError) else None
        self.contracts_failed += 1
        self.errors.append(MigrationErrorEntry(legacy_id, error_kind(exc), str(exc)))
        if getattr(exc, 'retryable', False):
            self.halted_by = error_kind(exc)

    def build(self, *, single: bool = False) -> MigrationResult:
        success = self.contracts_failed == 0
        if single and self._last_message:
            message = self._last_message
        else:
            message = (
                f'Migration completed: {self.contracts_migrated} contracts migrated, '
                f'{self.contracts_skipped} skipped, {self.contracts_failed} errors'
            )
            if self.cancelled:
                message = 'Migration cancelled: ' + message[len('Migration completed: '):]
            if self.halted_by:
                message += f' (stopped on {self.halted_by}, retry later)'
        return MigrationResult(
            success=success,
            message=message,
            contracts_migrated=self.contracts_migrated,
            installments_migrated=self.installments_migrated,
            negotiations_created=self.negotiations_created,
            contracts_skipped=self.contracts_skipped,
            contracts_failed=self.contracts_failed,
            cancelled=self.cancelled,
            errors=list(self.errors),
        )


def aggregate(outcomes: Iterable[ContractOutcome]) -> MigrationResult:
    aggregator = MigrationResultAggregator()
    for outcome in outcomes:
        aggregator.add(outcome)
    return aggregator.build()
