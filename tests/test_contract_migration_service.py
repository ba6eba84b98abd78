import json
import threading
import unittest
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

from _support import MigrationStores, schedule
from sqlalchemy.exc import OperationalError

from contract_migration.core.errors import SourceUnavailableError
from contract_migration.models import (
    Contract,
    Installment,
    LegacyContractInstallment,
    MigrationRecord,
    MigrationStatus,
    Negotiation,
)
from contract_migration.services.migration_types import OutcomeStatus


class ContractMigrationServiceTests(unittest.TestCase):
    def setUp(self):
        self.stores = MigrationStores()

    def tearDown(self):
        self.stores.close()

    def _counts(self):
        db = self.stores.target_session()
        try:
            return (
                db.query(Contract).count(),
                db.query(Installment).count(),
                db.query(Negotiation).count(),
            )
        finally:
            db.close()

    def _record(self, legacy_id):
        db = self.stores.target_session()
        try:
            return db.query(MigrationRecord).filter(MigrationRecord.legacy_contract_id == legacy_id).first()
        finally:
            db.close()

    def test_migrate_contract_writes_contract_schedule_and_record(self):
        self.stores.add_legacy_contract(
            1,
            '3000',
            [(date(2024, 3, 1), '1000'), (date(2024, 1, 1), '1000', True), (date(2024, 2, 1), '1000')],
            rescheduled=True,
            sc_file='D:\\Soit-Med\\legacy\\SOIT\\UploadFiles\\Files\\contract 1.pdf',
        )
        service = self.stores.service()
        outcome = service.migrate_contract(1, 'ops-user')

        self.assertEqual(outcome.status, OutcomeStatus.MIGRATED)
        self.assertEqual(outcome.installments, 3)
        self.assertEqual(outcome.negotiations, 1)

        db = self.stores.target_session()
        try:
            contract = db.query(Contract).filter(Contract.legacy_contract_id == 1).one()
            self.assertEqual(contract.id, outcome.target_id)
            self.assertEqual(contract.migrated_by, 'ops-user')
            self.assertEqual(contract.contract_number, '9001')
            self.assertEqual(contract.document_url, '/api/LegacyMedia/files/contract%201.pdf')
            self.assertEqual(Decimal(contract.total_amount), Decimal('3000'))
            rows = db.query(Installment).filter(Installment.contract_id == contract.id).order_by(Installment.sequence_number).all()
            self.assertEqual([r.sequence_number for r in rows], [1, 2, 3])
            self.assertEqual([r.due_date for r in rows], [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)])
            self.assertEqual([r.status for r in rows], ['paid', 'overdue', 'pending'])
            negotiation = db.query(Negotiation).filter(Negotiation.contract_id == contract.id).one()
            self.assertEqual(negotiation.action_type, 'reschedule')
            self.assertEqual(json.loads(negotiation.installment_numbers_json), [1, 2, 3])
            self.assertEqual(negotiation.submitted_by, 'ops-user')
        finally:
            db.close()

        record = self._record(1)
        self.assertEqual(record.status, MigrationStatus.MIGRATED)
        self.assertEqual(record.target_contract_id, outcome.target_id)
        self.assertEqual(record.actor, 'ops-user')

    def test_second_migration_is_skipped_and_changes_nothing(self):
        self.stores.add_legacy_contract(1, '200', schedule('100', '100'))
        service = self.stores.service()
        first = service.migrate_contract(1, 'system')
        counts_after_first = self._counts()
        with patch.object(service._reader, 'get_legacy_contract') as reader_get:
            second = service.migrate_contract(1, 'system')
            reader_get.assert_not_called()
        self.assertEqual(first.status, OutcomeStatus.MIGRATED)
        self.assertEqual(second.status, OutcomeStatus.SKIPPED)
        self.assertEqual(self._counts(), counts_after_first)
        self.assertEqual(self._record(1).attempts, 1)

    def test_reconciliation_failure_writes_nothing_and_records_failed(self):
        self.stores.add_legacy_contract(1, '1000.00', schedule('500.00', '499.99'))
        outcome = self.stores.service().migrate_contract(1, 'system')
        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertEqual(outcome.error.kind, 'reconciliation')
        self.assertEqual(self._counts(), (0, 0, 0))
        record = self._record(1)
        self.assertEqual(record.status, MigrationStatus.FAILED)
        self.assertEqual(record.error_kind, 'reconciliation')

    def test_plan_only_contract_migrates_generated_schedule(self):
        self.stores.add_legacy_contract(
            5,
            '300',
            start_date=datetime(2024, 1, 1),
            installment_months=3,
            installment_amount=Decimal('100'),
        )
        outcome = self.stores.service().migrate_contract(5)
        self.assertEqual(outcome.status, OutcomeStatus.MIGRATED)
        self.assertEqual(outcome.installments, 3)
        db = self.stores.target_session()
        try:
            rows = db.query(Installment).order_by(Installment.sequence_number).all()
            self.assertEqual([r.due_date for r in rows], [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)])
            self.assertEqual([r.status for r in rows], ['overdue', 'pending', 'pending'])
        finally:
            db.close()

    def test_plan_only_contract_that_does_not_add_up_fails_reconciliation(self):
        self.stores.add_legacy_contract(
            6,
            '300',
            start_date=datetime(2023, 12, 1),
            installment_months=3,
            installment_amount=Decimal('90'),
        )
        outcome = self.stores.service().migrate_contract(6)
        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertEqual(outcome.error.kind, 'reconciliation')
        self.assertEqual(self._counts(), (0, 0, 0))
        self.assertEqual(self._record(6).error_kind, 'reconciliation')

    def test_failed_contract_is_retried_after_fix(self):
        self.stores.add_legacy_contract(1, '100', [(date(2024, 1, 1), None)])
        service = self.stores.service()
        self.assertEqual(service.migrate_contract(1).status, OutcomeStatus.FAILED)

        db = self.stores.legacy_sessions()
        try:
            db.query(LegacyContractInstallment).update({LegacyContractInstallment.amount: Decimal('100')})
            db.commit()
        finally:
            db.close()

        self.assertEqual(service.migrate_contract(1).status, OutcomeStatus.MIGRATED)
        self.assertEqual(self._record(1).attempts, 2)

    def test_unknown_legacy_id_fails_as_not_found(self):
        result = self.stores.service().migrate_one(404, 'system')
        self.assertFalse(result.success)
        self.assertEqual(result.contracts_migrated, 0)
        self.assertEqual(result.errors[0].kind, 'not_found')
        self.assertEqual(result.errors[0].legacy_id, 404)

    def test_atomic_write_rolls_back_on_injected_failure(self):
        self.stores.add_legacy_contract(1, '200', schedule('100', '100'), rescheduled=True)
        service = self.stores.service()
        with patch(
            'contract_migration.repositories.contracts.add_negotiations',
            side_effect=RuntimeError('negotiation insert failed'),
        ):
            outcome = service.migrate_contract(1, 'system')
        self.assertEqual(outcome.status, OutcomeStatus.FAILED)
        self.assertEqual(outcome.error.kind, 'unexpected')
        self.assertEqual(self._counts(), (0, 0, 0))
        self.assertEqual(self._record(1).status, MigrationStatus.FAILED)

        self.assertEqual(service.migrate_contract(1, 'system').status, OutcomeStatus.MIGRATED)
        self.assertEqual(self._counts(), (1, 2, 1))

    def test_target_store_outage_is_store_unavailable(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'))
        service = self.stores.service()
        boom = OperationalError('INSERT', {}, Exception('database is locked'))
        with patch('contract_migration.repositories.contracts.add_installments', side_effect=boom):
            outcome = service.migrate_contract(1)
        self.assertEqual(outcome.error.kind, 'store_unavailable')
        self.assertEqual(self._counts(), (0, 0, 0))

    def test_concurrent_same_contract_yields_one_migrated_one_skipped(self):
        self.stores.add_legacy_contract(1, '300', schedule('100', '100', '100'))
        service = self.stores.service()
        barrier = threading.Barrier(2)
        outcomes = []

        def run():
            barrier.wait()
            outcomes.append(service.migrate_contract(1, 'system'))

        threads = [threading.Thread(target=run) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sorted(o.status.value for o in outcomes), ['migrated', 'skipped'])
        self.assertEqual(self._counts()[0], 1)

    def test_duplicate_target_row_is_reported_as_skipped(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'))
        first_target = self.stores.service().migrate_contract(1).target_id
        db = self.stores.target_session()
        try:
            db.query(MigrationRecord).delete()
            db.commit()
        finally:
            db.close()
        service = self.stores.service()
        outcome = service.migrate_contract(1)
        self.assertEqual(outcome.status, OutcomeStatus.SKIPPED)
        self.assertEqual(self._counts()[0], 1)
        record = self._record(1)
        self.assertEqual(record.status, MigrationStatus.MIGRATED)
        self.assertEqual(record.target_contract_id, first_target)
        self.assertEqual(list(service._reader.list_unmigrated_legacy_contracts()), [])
        self.assertEqual(service.get_statistics()['migrated'], 1)

    def test_migrate_all_isolates_partial_failure(self):
        self.stores.add_legacy_contract(1, '200', schedule('100', '100'))
        self.stores.add_legacy_contract(2, '200', [(None, '100'), (date(2024, 2, 1), '100')])
        self.stores.add_legacy_contract(3, '300', schedule('100', '100', '100'), root_id=1)
        result = self.stores.service(migration_max_workers=2).migrate_all('batch-user')

        self.assertFalse(result.success)
        self.assertEqual(result.contracts_migrated, 2)
        self.assertEqual(result.installments_migrated, 5)
        self.assertEqual(result.negotiations_created, 1)
        self.assertEqual(result.contracts_failed, 1)
        self.assertEqual([(e.legacy_id, e.kind) for e in result.errors], [(2, 'malformed_schedule')])
        self.assertEqual(self._record(1).status, MigrationStatus.MIGRATED)
        self.assertEqual(self._record(3).status, MigrationStatus.MIGRATED)
        self.assertEqual(self._record(2).status, MigrationStatus.FAILED)

    def test_migrate_all_rerun_only_retries_unsettled(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'))
        self.stores.add_legacy_contract(2, '100', schedule('90'))
        service = self.stores.service(migration_max_workers=1)
        first = service.migrate_all()
        self.assertEqual((first.contracts_migrated, first.contracts_failed), (1, 1))
        second = service.migrate_all()
        self.assertEqual((second.contracts_migrated, second.contracts_failed), (0, 1))
        self.assertEqual(self._counts()[0], 1)

    def test_migrate_all_error_order_follows_legacy_order(self):
        for cid in range(1, 8):
            amount = '100' if cid % 2 else '99'
            self.stores.add_legacy_contract(cid, '100', schedule(amount))
        result = self.stores.service(migration_max_workers=4).migrate_all()
        self.assertEqual([e.legacy_id for e in result.errors], [2, 4, 6])
        self.assertEqual(result.contracts_migrated, 4)

    def test_exclusions_are_recorded_as_skipped(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'), cancelled=True)
        self.stores.add_legacy_contract(2, '0')
        self.stores.add_legacy_contract(3, '100', schedule('100'))
        service = self.stores.service()
        result = service.migrate_all()
        self.assertTrue(result.success)
        self.assertEqual(result.contracts_migrated, 1)
        self.assertEqual(result.contracts_skipped, 2)
        self.assertEqual(self._record(1).status, MigrationStatus.SKIPPED)
        self.assertEqual(self._record(1).error_kind, 'excluded')
        self.assertEqual(self._record(2).status, MigrationStatus.SKIPPED)

        again = service.migrate_all()
        self.assertEqual((again.contracts_migrated, again.contracts_skipped), (0, 0))

    def test_force_reattempts_skipped_but_not_migrated(self):
        self.stores.add_legacy_contract(1, '0')
        service = self.stores.service()
        self.assertEqual(service.migrate_contract(1).status, OutcomeStatus.SKIPPED)

        permissive = self.stores.service(skip_zero_amount_contracts=False)
        self.assertEqual(permissive.migrate_contract(1).status, OutcomeStatus.SKIPPED)
        self.assertEqual(permissive.migrate_contract(1, force=True).status, OutcomeStatus.MIGRATED)
        self.assertEqual(permissive.migrate_contract(1, force=True).status, OutcomeStatus.SKIPPED)
        self.assertEqual(self._counts(), (1, 0, 0))

    def test_cancellation_returns_partial_result(self):
        for cid in range(1, 6):
            self.stores.add_legacy_contract(cid, '100', schedule('100'))
        service = self.stores.service(migration_max_workers=1)
        cancel = threading.Event()
        original = service._run_locked

        def run_then_cancel(legacy_id, *args, **kwargs):
            outcome = original(legacy_id, *args, **kwargs)
            if legacy_id == 2:
                cancel.set()
            return outcome

        with patch.object(service, '_run_locked', side_effect=run_then_cancel):
            result = service.migrate_all('system', cancel_event=cancel)

        self.assertTrue(result.cancelled)
        self.assertTrue(result.success)
        self.assertEqual(result.contracts_migrated, 2)
        self.assertEqual(self._counts()[0], 2)
        self.assertTrue(service._tracker.is_migrated(1))
        self.assertFalse(service._tracker.is_settled(3))

    def test_source_outage_during_listing_is_single_retryable_error(self):
        service = self.stores.service()
        with patch.object(
            service._reader,
            'list_unmigrated_legacy_contracts',
            side_effect=SourceUnavailableError('legacy store unavailable'),
        ):
            result = service.migrate_all()
        self.assertFalse(result.success)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].kind, 'source_unavailable')

    def test_store_outage_stops_scheduling_further_contracts(self):
        for cid in range(1, 5):
            self.stores.add_legacy_contract(cid, '100', schedule('100'))
        service = self.stores.service(migration_max_workers=1)
        boom = OperationalError('INSERT', {}, Exception('disk I/O error'))
        with patch('contract_migration.repositories.contracts.add_contract', side_effect=boom):
            result = service.migrate_all()
        self.assertFalse(result.success)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].kind, 'store_unavailable')
        self.assertIn('retry later', result.message)

    def test_statistics(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'))
        self.stores.add_legacy_contract(2, '100', schedule('50'))
        self.stores.add_legacy_contract(3, '0')
        self.stores.add_legacy_contract(4, '100', schedule('100'))
        service = self.stores.service()
        for cid in (1, 2, 3):
            service.migrate_contract(cid)
        self.assertEqual(
            service.get_statistics(),
            {'pending': 1, 'migrated': 1, 'failed': 1, 'skipped': 1, 'total_legacy': 4},
        )

    def test_statistics_ignore_attempts_on_unknown_ids(self):
        self.stores.add_legacy_contract(1, '100', schedule('100'))
        service = self.stores.service()
        service.migrate_one(404)
        self.assertEqual(
            service.get_statistics(),
            {'pending': 1, 'migrated': 0, 'failed': 1, 'skipped': 0, 'total_legacy': 1},
        )

    def test_statistics_without_legacy_store(self):
        service = self.stores.service()
        with patch.object(service._reader, 'count_legacy_contracts', side_effect=SourceUnavailableError('down')):
            stats = service.get_statistics()
        self.assertIsNone(stats['total_legacy'])


if __name__ == '__main__':
    unittest.main()
