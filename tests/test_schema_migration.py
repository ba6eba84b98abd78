import importlib.util
import tempfile
import unittest
from pathlib import Path

from _support import ROOT
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

VERSION_FILE = ROOT / 'backend' / 'alembic' / 'versions' / '0001_contract_migration_schema.py'


def _load_revision():
    spec = importlib.util.spec_from_file_location('contract_migration_schema_0001', VERSION_FILE)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class SchemaMigrationTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = create_engine(f'sqlite:///{Path(self._tmp.name) / "schema.db"}')
        self.revision = _load_revision()

    def tearDown(self):
        self.engine.dispose()
        self._tmp.cleanup()

    def _run(self, step):
        with self.engine.begin() as conn:
            ctx = MigrationContext.configure(conn)
            with Operations.context(ctx):
                step()

    def test_upgrade_creates_tables_and_unique_indexes(self):
        self._run(self.revision.upgrade)
        inspector = inspect(self.engine)
        self.assertTrue({'contracts', 'installments', 'negotiations', 'migration_records'} <= set(inspector.get_table_names()))
        unique = {ix['name'] for ix in inspector.get_indexes('contracts') if ix['unique']}
        self.assertIn('ux_contracts_legacy_contract_id', unique)
        unique = {ix['name'] for ix in inspector.get_indexes('migration_records') if ix['unique']}
        self.assertIn('ux_migration_records_legacy_contract_id', unique)

    def test_downgrade_drops_everything(self):
        self._run(self.revision.upgrade)
        self._run(self.revision.downgrade)
        self.assertEqual(inspect(self.engine).get_table_names(), [])

    def test_revision_is_root(self):
        self.assertEqual(self.revision.revision, '0001_contract_migration_schema')
        self.assertIsNone(self.revision.down_revision)


if __name__ == '__main__':
    unittest.main()
