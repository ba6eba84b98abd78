from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from contract_migration.services.migration_types import (
    InstallmentDraft,
    LegacyContract,
    LegacyFlag,
    NegotiationDraft,
)

ACTION_BY_FLAG = {
    LegacyFlag.RESCHEDULED: 'reschedule',
    LegacyFlag.SPLIT: 'split',
}

_LABEL_BY_FLAG = {
    LegacyFlag.RESCHEDULED: 'Rescheduled plan',
    LegacyFlag.SPLIT: 'Split plan',
}


def _terms_summary(flag: str, contract: LegacyContract, installments: Sequence[InstallmentDraft]) -> str:
    total = sum((row.amount for row in installments), Decimal('0'))
    first_due = installments[0].due_date.isoformat()
    last_due = installments[-1].due_date.isoformat()
    text = (
        f'{_LABEL_BY_FLAG[flag]}: {len(installments)} installments totalling {total} {contract.currency} '
        f'from {first_due} to {last_due}'
    )
    if flag == LegacyFlag.SPLIT:
        text += ' (split from an earlier legacy contract)'
    return text + '. Migrated from legacy TBS.'


def synthesize_negotiations(
    contract: LegacyContract,
    installments: Sequence[InstallmentDraft],
    trigger_flags: Iterable[str] = (LegacyFlag.RESCHEDULED, LegacyFlag.SPLIT),
) -> list[NegotiationDraft]:
    """One negotiation per trigger flag present on the legacy record, governing the whole schedule.

    Pure: depends only on its arguments, so the order contracts are migrated in is irrelevant.
    """
    if not installments:
        return []
    numbers = tuple(row.sequence_number for row in installments)
    out: list[NegotiationDraft] = []
    for flag in trigger_flags:
        normalized = str(flag or '').strip().lower()
        if normalized not in ACTION_BY_FLAG or normalized not in contract.flags:
            continue
        if any(d.action_type == ACTION_BY_FLAG[normalized] for d in out):
            continue
        out.append(
            NegotiationDraft(
                action_type=ACTION_BY_FLAG[normalized],
                terms_summary=_terms_summary(normalized, contract, installments),
                installment_numbers=numbers,
            )
        )
    return out
