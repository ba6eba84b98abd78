from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from contract_migration.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MigrationStatus:
    PENDING = 'pending'
    MIGRATED = 'migrated'
    FAILED = 'failed'
    SKIPPED = 'skipped'

    ALL = (PENDING, MIGRATED, FAILED, SKIPPED)
    SETTLED = (MIGRATED, SKIPPED)


class Contract(Base):
    __tablename__ = 'contracts'

    id = Column(Integer, primary_key=True, index=True)
    legacy_contract_id = Column(Integer, nullable=False)
    contract_number = Column(String(100), nullable=False)
    title = Column(String(200), nullable=False)
    contract_content = Column(Text, nullable=True)
    document_url = Column(String(500), nullable=True)
    status = Column(String(16), nullable=False, default='signed', index=True)
    client_ref = Column(String(64), nullable=False, index=True)
    total_amount = Column(Numeric(18, 3), nullable=False)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    migrated_at = Column(DateTime, nullable=False, default=_utcnow)
    migrated_by = Column(String(128), nullable=False, default='system')

    installments = relationship(
        'Installment',
        back_populates='contract',
        order_by='Installment.sequence_number',
        cascade='all, delete-orphan',
    )
    negotiations = relationship('Negotiation', back_populates='contract', cascade='all, delete-orphan')


class Installment(Base):
    __tablename__ = 'installments'

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False, index=True)
    sequence_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(18, 3), nullable=False)
    status = Column(String(16), nullable=False, default='pending', index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    contract = relationship('Contract', back_populates='installments')


class Negotiation(Base):
    __tablename__ = 'negotiations'

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey('contracts.id', ondelete='CASCADE'), nullable=False, index=True)
    action_type = Column(String(32), nullable=False)
    terms_summary = Column(Text, nullable=False)
    installment_numbers_json = Column(Text, nullable=False, default='[]')
    submitted_by = Column(String(128), nullable=False, default='system')
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    contract = relationship('Contract', back_populates='negotiations')


class MigrationRecord(Base):
    __tablename__ = 'migration_records'

    id = Column(Integer, primary_key=True, index=True)
    legacy_contract_id = Column(Integer, nullable=False)
    target_contract_id = Column(Integer, nullable=True)
    status = Column(String(16), nullable=False, default=MigrationStatus.PENDING, index=True)
    error_kind = Column(String(32), nullable=True)
    last_error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    actor = Column(String(128), nullable=False, default='system')
    attempted_at = Column(DateTime, nullable=False, default=_utcnow)
    migrated_at = Column(DateTime, nullable=True)


Index('ux_contracts_legacy_contract_id', Contract.legacy_contract_id, unique=True)
Index('ux_installments_contract_sequence', Installment.contract_id, Installment.sequence_number, unique=True)
Index('ux_migration_records_legacy_contract_id', MigrationRecord.legacy_contract_id, unique=True)
Index('ix_migration_records_status_attempted', MigrationRecord.status, MigrationRecord.attempted_at)
