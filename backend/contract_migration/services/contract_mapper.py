from datetime import datetime

from contract_migration.core.config import settings
from contract_migration.services.media_paths import transform_legacy_path
from contract_migration.services.migration_types import LegacyContract

CONTRACT_SIGNED = 'signed'
CONTRACT_EXPIRED = 'expired'


def contract_status(contract: LegacyContract, now: datetime) -> str:
    if contract.end_date is not None and contract.end_date < now:
        return CONTRACT_EXPIRED
    return CONTRACT_SIGNED


def contract_number(contract: LegacyContract) -> str:
    if contract.contract_code is not None:
        return str(contract.contract_code)
    return f'LEG-{contract.legacy_id}'


def contract_content(contract: LegacyContract) -> str:
    lines: list[str] = []
    if str(contract.notes_tech or '').strip():
        lines.append(f'Technical Notes: {contract.notes_tech.strip()}')
    if str(contract.notes_finance or '').strip():
        lines.append(f'Financial Notes: {contract.notes_finance.strip()}')
    if str(contract.notes_admin or '').strip():
        lines.append(f'Administrative Notes: {contract.notes_admin.strip()}')
    lines.append(f'Contract Code: {contract.contract_code if contract.contract_code is not None else ""}')
    lines.append(f'Classer Number: {contract.classer_number or ""}')
    lines.append(f'Total Value: {contract.total_amount}')
    return '\n'.join(lines)


def build_contract_fields(contract: LegacyContract, *, now: datetime, media_base_url: str | None = None) -> dict:
    """Column values for the target ``contracts`` row, except migration bookkeeping."""
    base_url = settings.legacy_media_api_base_url if media_base_url is None else media_base_url
    document_url = transform_legacy_path(contract.sc_file, base_url) if contract.sc_file else ''
    label = contract.contract_code if contract.contract_code is not None else contract.legacy_id
    return {
        'legacy_contract_id': contract.legacy_id,
        'contract_number': contract_number(contract),
        'title': f'Maintenance Contract {label}',
        'contract_content': contract_content(contract),
        'document_url': document_url or None,
        'status': contract_status(contract, now),
        'client_ref': contract.client_ref,
        'total_amount': contract.total_amount,
        'currency': contract.currency,
        'created_at': contract.start_date or now,
    }
