from contract_migration.models.contracts import (
    Contract,
    Installment,
    MigrationRecord,
    MigrationStatus,
    Negotiation,
)
from contract_migration.models.legacy import LegacyContractInstallment, LegacyMaintenanceContract

__all__ = [
    'Contract',
    'Installment',
    'LegacyContractInstallment',
    'LegacyMaintenanceContract',
    'MigrationRecord',
    'MigrationStatus',
    'Negotiation',
]
