from __future__ import annotations

import logging
from collections.abc import Iterator
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Query, Session, load_only, sessionmaker

from contract_migration.core.config import settings
from contract_migration.core.errors import NotFoundError, SourceUnavailableError
from contract_migration.models.legacy import LegacyContractInstallment, LegacyMaintenanceContract
from contract_migration.services.migration_types import LegacyContract, LegacyFlag, LegacyInstallment

logger = logging.getLogger(__name__)

_STOCK_COLUMNS = (
    LegacyMaintenanceContract.cus_id,
    LegacyMaintenanceContract.classer_number,
    LegacyMaintenanceContract.contract_total_value,
    LegacyMaintenanceContract.start_date,
    LegacyMaintenanceContract.end_date,
    LegacyMaintenanceContract.contract_code,
    LegacyMaintenanceContract.notes_tech,
    LegacyMaintenanceContract.notes_finance,
    LegacyMaintenanceContract.notes_admin,
    LegacyMaintenanceContract.sc_file,
    LegacyMaintenanceContract.installment_months,
    LegacyMaintenanceContract.installment_amount,
    LegacyMaintenanceContract.contract_root_id,
)


def _legacy_flags(row: LegacyMaintenanceContract, extensions: bool = True) -> frozenset[str]:
    flags: set[str] = set()
    if row.contract_root_id is not None and int(row.contract_root_id) != int(row.contract_id):
        flags.add(LegacyFlag.SPLIT)
    if extensions:
        if bool(row.rescheduled):
            flags.add(LegacyFlag.RESCHEDULED)
        if bool(row.is_cancelled):
            flags.add(LegacyFlag.CANCELLED)
    return frozenset(flags)


def _plan_installments(row: LegacyMaintenanceContract) -> tuple[LegacyInstallment, ...]:
    """
    Raw schedule from the payment plan: InstallmentMonths rows of InstallmentAmount,
    due monthly after StartDate. Empty when the contract has no plan.
    """
    months = row.installment_months
    if months is None or row.installment_amount is None or int(months) <= 0:
        return ()
    start = row.start_date.date() if row.start_date is not None else None
    amount = Decimal(row.installment_amount)
    return tuple(
        LegacyInstallment(
            position=i - 1,
            legacy_installment_id=i,
            due_date=start + relativedelta(months=i) if start is not None else None,
            amount=amount,
        )
        for i in range(1, int(months) + 1)
    )


def _to_legacy_contract(
    row: LegacyMaintenanceContract,
    installment_rows: list[LegacyContractInstallment],
    extensions: bool = True,
) -> LegacyContract:
    installments = tuple(
        LegacyInstallment(
            position=position,
            legacy_installment_id=int(item.installment_id),
            due_date=item.due_date,
            amount=Decimal(item.amount) if item.amount is not None else None,
            paid=bool(item.paid),
        )
        for position, item in enumerate(installment_rows)
    )
    if not installments:
        installments = _plan_installments(row)
    raw_currency = row.currency if extensions else None
    currency = str(raw_currency or '').strip().upper() or settings.default_currency
    return LegacyContract(
        legacy_id=int(row.contract_id),
        client_ref=str(row.cus_id),
        total_amount=Decimal(row.contract_total_value if row.contract_total_value is not None else 0),
        currency=currency,
        installments=installments,
        flags=_legacy_flags(row, extensions),
        contract_code=row.contract_code,
        classer_number=str(row.classer_number or ''),
        start_date=row.start_date,
        end_date=row.end_date,
        notes_tech=row.notes_tech,
        notes_finance=row.notes_finance,
        notes_admin=row.notes_admin,
        sc_file=row.sc_file,
    )


def _installments_by_contract(db: Session, contract_ids: list[int]) -> dict[int, list[LegacyContractInstallment]]:
    out: dict[int, list[LegacyContractInstallment]] = {cid: [] for cid in contract_ids}
    if not contract_ids:
        return out
    rows = (
        db.query(LegacyContractInstallment)
        .filter(LegacyContractInstallment.contract_id.in_(contract_ids))
        .order_by(LegacyContractInstallment.contract_id.asc(), LegacyContractInstallment.installment_id.asc())
        .all()
    )
    for item in rows:
        out.setdefault(int(item.contract_id), []).append(item)
    return out


class LegacyContractReader:
    """Read-only access to the legacy TBS contract tables."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        tracker=None,
        batch_size: int | None = None,
        schema_extensions: bool | None = None,
    ):
        if session_factory is None:
            from contract_migration.db.session import LegacySessionLocal

            session_factory = LegacySessionLocal
        self._session_factory = session_factory
        self._tracker = tracker
        self._batch_size = max(1, int(batch_size or settings.legacy_fetch_batch_size or 500))
        self._extensions = settings.legacy_schema_extensions if schema_extensions is None else bool(schema_extensions)

    def _contracts(self, db: Session) -> Query:
        query = db.query(LegacyMaintenanceContract)
        if not self._extensions:
            query = query.options(load_only(*_STOCK_COLUMNS))
        return query

    def _installments(self, db: Session, contract_ids: list[int]) -> dict[int, list[LegacyContractInstallment]]:
        if not self._extensions:
            return {cid: [] for cid in contract_ids}
        return _installments_by_contract(db, contract_ids)

    def get_legacy_contract(self, legacy_id: int) -> LegacyContract:
        db = self._session_factory()
        try:
            row = (
                self._contracts(db)
                .filter(LegacyMaintenanceContract.contract_id == int(legacy_id))
                .first()
            )
            if row is None:
                raise NotFoundError(f'Legacy contract {legacy_id} not found in TBS database', int(legacy_id))
            items = self._installments(db, [int(row.contract_id)])
            return _to_legacy_contract(row, items[int(row.contract_id)], self._extensions)
        except (OperationalError, InterfaceError) as exc:
            raise SourceUnavailableError(f'Legacy store unavailable: {exc.orig or exc}', int(legacy_id)) from exc
        finally:
            db.close()

    def count_legacy_contracts(self) -> int:
        db = self._session_factory()
        try:
            return int(db.query(func.count(LegacyMaintenanceContract.contract_id)).scalar() or 0)
        except (OperationalError, InterfaceError) as exc:
            raise SourceUnavailableError(f'Legacy store unavailable: {exc.orig or exc}') from exc
        finally:
            db.close()

    def list_unmigrated_legacy_contracts(self) -> Iterator[LegacyContract]:
        """
        Lazily yield legacy contracts whose migration record is not migrated/skipped,
        ordered by legacy id. Keyset pagination keeps memory bounded; calling again restarts.
        """
        settled = self._tracker.settled_legacy_ids() if self._tracker is not None else set()
        last_id: int | None = None
        while True:
            db = self._session_factory()
            try:
                query = self._contracts(db)
                if last_id is not None:
                    query = query.filter(LegacyMaintenanceContract.contract_id > last_id)
                rows = query.order_by(LegacyMaintenanceContract.contract_id.asc()).limit(self._batch_size).all()
                if not rows:
                    return
                last_id = int(rows[-1].contract_id)
                pending_rows = [r for r in rows if int(r.contract_id) not in settled]
                items = self._installments(db, [int(r.contract_id) for r in pending_rows])
                batch = [_to_legacy_contract(r, items[int(r.contract_id)], self._extensions) for r in pending_rows]
            except (OperationalError, InterfaceError) as exc:
                raise SourceUnavailableError(f'Legacy store unavailable: {exc.orig or exc}') from exc
            finally:
                db.close()
            logger.debug('[legacy] page after=%s rows=%s unmigrated=%s', last_id, len(rows), len(batch))
            yield from batch
            if len(rows) < self._batch_size:
                return
