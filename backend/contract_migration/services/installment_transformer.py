"""Legacy installment schedule -> ordered target installments, with reconciliation."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from contract_migration.core.config import settings
from contract_migration.core.errors import MalformedScheduleError, ReconciliationError
from contract_migration.services.migration_types import InstallmentDraft, LegacyContract, LegacyInstallment

INSTALLMENT_PENDING = 'pending'
INSTALLMENT_OVERDUE = 'overdue'
INSTALLMENT_PAID = 'paid'


def currency_tolerance(
    currency: str,
    minor_units: dict[str, int] | None = None,
    tolerance_units: int | None = None,
) -> Decimal:
    """Smallest currency unit times the configured number of units (one cent by default)."""
    table = minor_units if minor_units is not None else settings.currency_minor_units
    exponent = int(table.get(str(currency or '').strip().upper(), 2))
    units = settings.reconciliation_tolerance_minor_units if tolerance_units is None else tolerance_units
    return Decimal(int(units)).scaleb(-exponent)


def _installment_status(row: LegacyInstallment, today: date) -> str:
    if row.paid:
        return INSTALLMENT_PAID
    if row.due_date < today:
        return INSTALLMENT_OVERDUE
    return INSTALLMENT_PENDING


def _validate_rows(contract: LegacyContract) -> None:
    for row in contract.installments:
        if row.due_date is None:
            raise MalformedScheduleError(
                f'Installment {row.legacy_installment_id} has no due date',
                contract.legacy_id,
            )
        if row.amount is None:
            raise MalformedScheduleError(
                f'Installment {row.legacy_installment_id} has no amount',
                contract.legacy_id,
            )
        if row.amount < 0:
            raise MalformedScheduleError(
                f'Installment {row.legacy_installment_id} has negative amount {row.amount}',
                contract.legacy_id,
            )


def transform_installments(
    contract: LegacyContract,
    *,
    today: date,
    tolerance: Decimal | None = None,
) -> list[InstallmentDraft]:
    """Sort by due date (ties keep legacy order), number from 1 and reconcile against the total.

    Raises MalformedScheduleError for structurally invalid schedules and
    ReconciliationError when ``|total - sum| >= tolerance``. Nothing is written here;
    a raised error means no installments exist for the contract.
    """
    total = Decimal(contract.total_amount)
    if not contract.installments:
        if total == 0:
            return []
        raise MalformedScheduleError(
            f'Contract total {total} has no installment schedule',
            contract.legacy_id,
        )

    _validate_rows(contract)
    ordered = sorted(contract.installments, key=lambda row: (row.due_date, row.position))

    running_sum = Decimal('0')
    drafts: list[InstallmentDraft] = []
    for seq, row in enumerate(ordered, start=1):
        running_sum += row.amount
        drafts.append(
            InstallmentDraft(
                sequence_number=seq,
                due_date=row.due_date,
                amount=row.amount,
                status=_installment_status(row, today),
            )
        )

    allowed = tolerance if tolerance is not None else currency_tolerance(contract.currency)
    if abs(total - running_sum) >= allowed:
        raise ReconciliationError(contract.legacy_id, expected=total, actual=running_sum, tolerance=allowed)
    return drafts
