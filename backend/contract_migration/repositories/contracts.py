import json
from datetime import datetime

from sqlalchemy.orm import Session

from contract_migration.models.contracts import Contract, Installment, Negotiation
from contract_migration.services.migration_types import InstallmentDraft, NegotiationDraft


def find_by_legacy_id(db: Session, legacy_id: int) -> Contract | None:
    return db.query(Contract).filter(Contract.legacy_contract_id == int(legacy_id)).first()


def add_contract(db: Session, fields: dict, actor: str, now: datetime) -> Contract:
    row = Contract(**fields, migrated_at=now, migrated_by=actor)
    db.add(row)
    db.flush()
    return row


def add_installments(db: Session, contract: Contract, drafts: list[InstallmentDraft], now: datetime) -> list[Installment]:
    rows = [
        Installment(
            contract_id=contract.id,
            sequence_number=d.sequence_number,
            due_date=d.due_date,
            amount=d.amount,
            status=d.status,
            created_at=now,
        )
        for d in drafts
    ]
    db.add_all(rows)
    db.flush()
    return rows


def add_negotiations(
    db: Session, contract: Contract, drafts: list[NegotiationDraft], actor: str, now: datetime
) -> list[Negotiation]:
    rows = [
        Negotiation(
            contract_id=contract.id,
            action_type=d.action_type,
            terms_summary=d.terms_summary,
            installment_numbers_json=json.dumps(list(d.installment_numbers)),
            submitted_by=actor,
            created_at=now,
        )
        for d in drafts
    ]
    db.add_all(rows)
    db.flush()
    return rows


def write_migrated_contract(
    db: Session,
    fields: dict,
    installments: list[InstallmentDraft],
    negotiations: list[NegotiationDraft],
    actor: str,
    now: datetime,
) -> tuple[Contract, list[Installment], list[Negotiation]]:
    """Stage contract, schedule and negotiations in ``db``. The caller owns commit/rollback."""
    contract = add_contract(db, fields, actor, now)
    installment_rows = add_installments(db, contract, installments, now)
    negotiation_rows = add_negotiations(db, contract, negotiations, actor, now)
    return contract, installment_rows, negotiation_rows
