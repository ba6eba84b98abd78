"""Value types passed between the migration engine components."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class LegacyFlag:
    RESCHEDULED = 'rescheduled'
    SPLIT = 'split'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class LegacyInstallment:
    """One raw installment row; ``position`` is the legacy record order."""

    position: int
    legacy_installment_id: int
    due_date: date | None
    amount: Decimal | None
    paid: bool = False


@dataclass(frozen=True)
class LegacyContract:
    legacy_id: int
    client_ref: str
    total_amount: Decimal
    currency: str
    installments: tuple[LegacyInstallment, ...] = ()
    flags: frozenset[str] = frozenset()
    contract_code: int | None = None
    classer_number: str = ''
    start_date: datetime | None = None
    end_date: datetime | None = None
    notes_tech: str | None = None
    notes_finance: str | None = None
    notes_admin: str | None = None
    sc_file: str | None = None


@dataclass(frozen=True)
class InstallmentDraft:
    sequence_number: int
    due_date: date
    amount: Decimal
    status: str


@dataclass(frozen=True)
class NegotiationDraft:
    action_type: str
    terms_summary: str
    installment_numbers: tuple[int, ...]


class OutcomeStatus(str, Enum):
    MIGRATED = 'migrated'
    SKIPPED = 'skipped'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class MigrationErrorEntry:
    legacy_id: int | None
    kind: str
    message: str


@dataclass
class ContractOutcome:
    legacy_id: int
    status: OutcomeStatus
    target_id: int | None = None
    installments: int = 0
    negotiations: int = 0
    error: MigrationErrorEntry | None = None
    message: str = ''


@dataclass
class MigrationResult:
    success: bool
    message: str
    contracts_migrated: int = 0
    installments_migrated: int = 0
    negotiations_created: int = 0
    contracts_skipped: int = 0
    contracts_failed: int = 0
    cancelled: bool = False
    errors: list[MigrationErrorEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
