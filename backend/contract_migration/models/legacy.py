from sqlalchemy import Boolean, Column, Date, DateTime, Integer, Numeric, String, Text

from contract_migration.db.base import LegacyBase


class LegacyMaintenanceContract(LegacyBase):
    __tablename__ = 'MNT_MaintenanceContract'

    contract_id = Column('ContractId', Integer, primary_key=True)
    cus_id = Column('Cus_ID', Integer, nullable=False)
    classer_number = Column('ClasserNumber', String(50), nullable=False, default='')
    contract_total_value = Column('ContractTotalValue', Numeric(18, 3), nullable=False)
    start_date = Column('StartDate', DateTime, nullable=True)
    end_date = Column('EndDate', DateTime, nullable=True)
    contract_code = Column('ContractCode', Integer, nullable=True)
    notes_tech = Column('Notes_Tech', Text, nullable=True)
    notes_finance = Column('Notes_Finance', Text, nullable=True)
    notes_admin = Column('Notes_Admin', Text, nullable=True)
    sc_file = Column('SC_File', String(255), nullable=True)
    installment_months = Column('InstallmentMonths', Integer, nullable=True)
    installment_amount = Column('InstallmentAmount', Numeric(18, 3), nullable=True)
    contract_root_id = Column('Contract_Root_Id', Integer, nullable=True)

    # Extension columns, read only when LEGACY_SCHEMA_EXTENSIONS is on.
    currency = Column('Currency', String(3), nullable=True)
    rescheduled = Column('Rescheduled', Boolean, nullable=True, default=False)
    is_cancelled = Column('IsCancelled', Boolean, nullable=True, default=False)


# Extension table, read only when LEGACY_SCHEMA_EXTENSIONS is on.
class LegacyContractInstallment(LegacyBase):
    __tablename__ = 'MNT_MaintenanceContract_Installments'

    installment_id = Column('InstallmentId', Integer, primary_key=True)
    contract_id = Column('ContractId', Integer, nullable=False, index=True)
    due_date = Column('DueDate', Date, nullable=True)
    amount = Column('Amount', Numeric(18, 3), nullable=True)
    paid = Column('Paid', Boolean, nullable=False, default=False)
