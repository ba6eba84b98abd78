from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker

from contract_migration.core.config import Settings, settings
from contract_migration.core.errors import (
    RETRYABLE_KINDS,
    AlreadyMigratedError,
    ExcludedContractError,
    MigrationCancelledError,
    MigrationError,
    SourceUnavailableError,
    StoreUnavailableError,
    error_kind,
)
from contract_migration.core.logging_config import structured_log
from contract_migration.models.contracts import MigrationStatus
from contract_migration.repositories import contracts as contracts_repo
from contract_migration.repositories.legacy_contracts import LegacyContractReader
from contract_migration.repositories.migration_state import MigrationStateTracker
from contract_migration.services.contract_mapper import build_contract_fields
from contract_migration.services.installment_transformer import currency_tolerance, transform_installments
from contract_migration.services.migration_types import (
    ContractOutcome,
    LegacyContract,
    LegacyFlag,
    MigrationErrorEntry,
    MigrationResult,
    OutcomeStatus,
)
from contract_migration.services.negotiation_synthesizer import synthesize_negotiations
from contract_migration.services.result_aggregator import MigrationResultAggregator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class _KeyedLocks:
    """One lock per legacy id, dropped once no thread holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, list] = {}

    @contextmanager
    def hold(self, key: int):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)


_contract_locks = _KeyedLocks()


def _skipped(legacy_id: int, message: str) -> ContractOutcome:
    return ContractOutcome(legacy_id=legacy_id, status=OutcomeStatus.SKIPPED, message=message)


def _failed(legacy_id: int, exc: BaseException) -> ContractOutcome:
    entry = MigrationErrorEntry(legacy_id=legacy_id, kind=error_kind(exc), message=str(exc))
    return ContractOutcome(
        legacy_id=legacy_id,
        status=OutcomeStatus.FAILED,
        error=entry,
        message=f'Migration failed for contract {legacy_id}: {exc}',
    )


class ContractMigrationService:
    """
    Drives legacy contract migration: state check, read, transform, atomic write, record.
    Every per-contract error is turned into a ContractOutcome; nothing escapes the public methods.
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        reader: LegacyContractReader | None = None,
        tracker: MigrationStateTracker | None = None,
        config: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if session_factory is None:
            from contract_migration.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._config = config or settings
        self._tracker = tracker or MigrationStateTracker(session_factory)
        self._reader = reader or LegacyContractReader(
            tracker=self._tracker,
            batch_size=self._config.legacy_fetch_batch_size,
            schema_extensions=self._config.legacy_schema_extensions,
        )
        self._clock = clock or _utcnow

    # single contract

    def migrate_contract(self, legacy_id: int, actor: str = 'system', force: bool = False) -> ContractOutcome:
        return self._run_locked(int(legacy_id), actor, force=force)

    def migrate_one(self, legacy_id: int, actor: str = 'system', force: bool = False) -> MigrationResult:
        aggregator = MigrationResultAggregator()
        aggregator.add(self.migrate_contract(legacy_id, actor, force=force))
        return aggregator.build(single=True)

    def _run_locked(self, legacy_id: int, actor: str, force: bool = False, preloaded: LegacyContract | None = None) -> ContractOutcome:
        with _contract_locks.hold(legacy_id):
            try:
                return self._migrate_unlocked(legacy_id, actor, force, preloaded)
            except AlreadyMigratedError as exc:
                logger.info('[migration:%s] skipped: %s', legacy_id, exc)
                return _skipped(legacy_id, f'Contract {legacy_id} already migrated')
            except MigrationError as exc:
                logger.warning('[migration:%s] failed (%s): %s', legacy_id, exc.kind, exc)
                self._record_failure(legacy_id, exc, actor)
                return _failed(legacy_id, exc)
            except Exception as exc:
                logger.exception('[migration:%s] unexpected failure: %s', legacy_id, exc)
                self._record_failure(legacy_id, exc, actor)
                return _failed(legacy_id, exc)

    def _migrate_unlocked(
        self, legacy_id: int, actor: str, force: bool, preloaded: LegacyContract | None
    ) -> ContractOutcome:
        record = self._store_call(self._tracker.get_record, legacy_id)
        if record is not None and record.status == MigrationStatus.MIGRATED:
            raise AlreadyMigratedError(f'Contract {legacy_id} already migrated', legacy_id)
        if record is not None and record.status == MigrationStatus.SKIPPED and not force:
            return _skipped(legacy_id, f'Contract {legacy_id} was skipped earlier: {record.last_error}')

        contract = preloaded if preloaded is not None else self._reader.get_legacy_contract(legacy_id)

        reason = self._exclusion_reason(contract)
        if reason:
            self._store_call(
                self._tracker.record_outcome,
                legacy_id,
                MigrationStatus.SKIPPED,
                error=ExcludedContractError(reason, legacy_id),
                actor=actor,
            )
            logger.info('[migration:%s] skipped: %s', legacy_id, reason)
            return _skipped(legacy_id, f'Contract {legacy_id} skipped: {reason}')

        now = self._clock()
        tolerance = currency_tolerance(
            contract.currency,
            self._config.currency_minor_units,
            self._config.reconciliation_tolerance_minor_units,
        )
        installments = transform_installments(contract, today=now.date(), tolerance=tolerance)
        negotiations = synthesize_negotiations(contract, installments, self._config.negotiation_trigger_flags)
        fields = build_contract_fields(contract, now=now, media_base_url=self._config.legacy_media_api_base_url)

        target_id = self._write(legacy_id, fields, installments, negotiations, actor, now)
        logger.info(
            '[migration:%s] migrated target=%s installments=%s negotiations=%s',
            legacy_id,
            target_id,
            len(installments),
            len(negotiations),
        )
        return ContractOutcome(
            legacy_id=legacy_id,
            status=OutcomeStatus.MIGRATED,
            target_id=target_id,
            installments=len(installments),
            negotiations=len(negotiations),
            message=f'Contract {legacy_id} migrated successfully with {len(installments)} installments',
        )

    def _exclusion_reason(self, contract: LegacyContract) -> str:
        if LegacyFlag.CANCELLED in contract.flags:
            return 'cancelled in legacy system'
        if self._config.skip_zero_amount_contracts and contract.total_amount == 0 and not contract.installments:
            return 'zero amount contract'
        return ''

    def _write(self, legacy_id, fields, installments, negotiations, actor, now) -> int:
        """Contract, installments, negotiations and the migrated record commit together or not at all."""
        db = self._session_factory()
        try:
            contract, _, _ = contracts_repo.write_migrated_contract(db, fields, installments, negotiations, actor, now)
            self._tracker.record_outcome(legacy_id, MigrationStatus.MIGRATED, target_id=contract.id, actor=actor, db=db)
            db.commit()
            return int(contract.id)
        except IntegrityError as exc:
            db.rollback()
            existing = contracts_repo.find_by_legacy_id(db, legacy_id)
            if existing is not None:
                self._tracker.record_outcome(
                    legacy_id, MigrationStatus.MIGRATED, target_id=int(existing.id), actor=actor
                )
                raise AlreadyMigratedError(
                    f'Contract {legacy_id} already migrated to {existing.id}', legacy_id
                ) from exc
            raise
        except (OperationalError, InterfaceError) as exc:
            db.rollback()
            raise StoreUnavailableError(f'Target store unavailable: {exc.orig or exc}', legacy_id) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _store_call(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailableError(f'Target store unavailable: {exc.orig or exc}') from exc

    def _record_failure(self, legacy_id: int, exc: BaseException, actor: str) -> None:
        try:
            self._tracker.record_outcome(legacy_id, MigrationStatus.FAILED, error=exc, actor=actor)
        except AlreadyMigratedError:
            logger.info('[migration:%s] failure not recorded, contract already migrated', legacy_id)
        except Exception as record_exc:
            logger.error('[migration:%s] could not record failure: %s', legacy_id, record_exc)

    # batch

    def migrate_all(
        self,
        actor: str = 'system',
        cancel_event: threading.Event | None = None,
        max_workers: int | None = None,
    ) -> MigrationResult:
        """
        Migrate every unmigrated legacy contract with bounded parallelism.
        Outcomes are folded in listing order. Cancellation and infrastructure
        errors stop new contracts from starting; running ones finish.
        """
        workers = max(1, int(max_workers or self._config.migration_max_workers or 1))
        cancel_event = cancel_event or threading.Event()
        halt_event = threading.Event()
        aggregator = MigrationResultAggregator()
        trace_id = uuid.uuid4().hex
        started = time.perf_counter()
        logger.info('[migration:batch:%s] start actor=%s workers=%s', trace_id, actor, workers)

        in_flight: deque[Future] = deque()

        def _drain(limit: int) -> None:
            while len(in_flight) > limit:
                outcome = in_flight.popleft().result()
                if outcome is not None:
                    aggregator.add(outcome)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='contract-migration') as pool:
            try:
                for contract in self._reader.list_unmigrated_legacy_contracts():
                    if cancel_event.is_set():
                        aggregator.cancelled = True
                        break
                    if halt_event.is_set():
                        break
                    in_flight.append(pool.submit(self._run_in_batch, contract, actor, cancel_event, halt_event))
                    _drain(workers * 2 - 1)
            except (SourceUnavailableError, StoreUnavailableError) as exc:
                logger.error('[migration:batch:%s] listing failed: %s', trace_id, exc)
                aggregator.add_batch_error(exc)
            except (OperationalError, InterfaceError) as exc:
                logger.error('[migration:batch:%s] target store failed during listing: %s', trace_id, exc)
                aggregator.add_batch_error(StoreUnavailableError(f'Target store unavailable: {exc.orig or exc}'))
            except Exception as exc:
                logger.exception('[migration:batch:%s] listing failed: %s', trace_id, exc)
                aggregator.add_batch_error(exc)
            finally:
                _drain(0)

        result = aggregator.build()
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info('[migration:batch:%s] %s', trace_id, result.message)
        structured_log(
            'info' if result.success else 'warning',
            'migration batch finished',
            trace_id=trace_id,
            duration_ms=duration_ms,
            endpoint='migrate_all',
            actor=actor,
            contracts_migrated=result.contracts_migrated,
            installments_migrated=result.installments_migrated,
            negotiations_created=result.negotiations_created,
            contracts_skipped=result.contracts_skipped,
            contracts_failed=result.contracts_failed,
            cancelled=result.cancelled,
        )
        return result

    def _run_in_batch(
        self,
        contract: LegacyContract,
        actor: str,
        cancel_event: threading.Event,
        halt_event: threading.Event,
    ) -> ContractOutcome | None:
        if halt_event.is_set():
            return None
        if cancel_event.is_set():
            cancelled = MigrationCancelledError(f'Contract {contract.legacy_id} not started: batch cancelled', contract.legacy_id)
            return ContractOutcome(legacy_id=contract.legacy_id, status=OutcomeStatus.CANCELLED, message=str(cancelled))
        outcome = self._run_locked(contract.legacy_id, actor, preloaded=contract)
        if outcome.error is not None and outcome.error.kind in RETRYABLE_KINDS:
            halt_event.set()
        return outcome

    # statistics

    def get_statistics(self) -> dict:
        try:
            total_legacy = self._reader.count_legacy_contracts()
        except SourceUnavailableError as exc:
            logger.warning('[migration:stats] legacy total unavailable: %s', exc)
            total_legacy = None
        return self._store_call(self._tracker.get_statistics, total_legacy)
