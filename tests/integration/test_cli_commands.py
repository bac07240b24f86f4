"""
Integration tests for the migrate and reconcile commands, invoked through
Flask's CLI test runner.
"""

import json

import pytest

from dualsync.models import MigrationSync, User

from factories import UserDocumentFactory, WalletDocumentFactory, object_id


@pytest.mark.integration
class TestMigrateCommand:

    def test_clean_run_exits_zero(self, cli_runner, source, services):
        source.add('User', *UserDocumentFactory.build_batch(3))

        result = cli_runner.invoke(args=['migrate'])

        assert result.exit_code == 0, result.output
        assert '== test (schema: default, mode: migrate)' in result.output
        assert 'entity' in result.output and 'duration' in result.output
        assert services.target.count(User) == 3
        assert services.target.count(MigrationSync) > 0

    def test_unresolved_references_exit_nonzero(self, cli_runner, source, services):
        source.add('User', UserDocumentFactory())
        source.add('Wallet', WalletDocumentFactory(ownerUserId=object_id()))

        result = cli_runner.invoke(args=['migrate'])

        assert result.exit_code == 1
        wallet_line = next(line for line in result.output.splitlines() if line.startswith('Wallet '))
        assert 'partial' in wallet_line
        assert services.target.count(User) == 1

    def test_dry_run_writes_nothing(self, cli_runner, source, services):
        source.add('User', UserDocumentFactory())

        result = cli_runner.invoke(args=['migrate', '--dry-run'])

        assert result.exit_code == 0, result.output
        assert 'mode: dry_run' in result.output
        assert services.target.count(User) == 0
        assert services.target.count(MigrationSync) == 0

    def test_verify_drift_exits_nonzero(self, cli_runner, source):
        source.add('User', UserDocumentFactory())

        result = cli_runner.invoke(args=['migrate', '--verify'])

        assert result.exit_code == 1
        assert 'drift' in result.output

    def test_second_run_skips_completed_entities(self, cli_runner, source):
        source.add('User', UserDocumentFactory())
        assert cli_runner.invoke(args=['migrate']).exit_code == 0

        result = cli_runner.invoke(args=['migrate'])
        assert result.exit_code == 0
        assert '(skipped)' in result.output

    def test_dry_run_and_verify_conflict(self, cli_runner):
        result = cli_runner.invoke(args=['migrate', '--dry-run', '--verify'])
        assert result.exit_code == 2
        assert 'mutually exclusive' in result.output

    def test_unknown_target(self, cli_runner):
        result = cli_runner.invoke(args=['migrate', '--target', 'staging'])
        assert result.exit_code == 1
        assert 'Unknown migration target(s): staging' in result.output

    def test_missing_source_store(self, cli_runner, services):
        services.source = None
        result = cli_runner.invoke(args=['migrate'])
        assert result.exit_code == 1
        assert 'MONGODB_URI is not configured' in result.output


@pytest.mark.integration
class TestReconcileCommand:

    def test_bulk_update_resync(self, cli_runner, source, services):
        source.add('User', *UserDocumentFactory.build_batch(2, status='suspended'))
        source.add('User', UserDocumentFactory(status='active'))

        result = cli_runner.invoke(args=['reconcile', 'User', '--filter', '{"status": "suspended"}'])

        assert result.exit_code == 0, result.output
        body = json.loads(result.stdout)
        assert body['operation'] == 'bulkUpdate'
        assert (body['matched'], body['written']) == (2, 2)
        assert services.target.count(User) == 2

    def test_bulk_delete_sweep(self, cli_runner, source, services):
        gone = UserDocumentFactory()
        source.add('User', gone)
        services.writer.write('User', gone)
        source.remove('User', gone['_id'])

        result = cli_runner.invoke(args=['reconcile', 'User', '--deleted'])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)['deleted'] == 1
        assert services.target.count(User) == 0

    def test_invalid_filter(self, cli_runner):
        result = cli_runner.invoke(args=['reconcile', 'User', '--filter', '{status'])
        assert result.exit_code == 2
        assert 'invalid JSON' in result.output

    def test_non_object_filter(self, cli_runner):
        result = cli_runner.invoke(args=['reconcile', 'User', '--filter', '[1, 2]'])
        assert result.exit_code == 2

    def test_unknown_entity_type(self, cli_runner):
        result = cli_runner.invoke(args=['reconcile', 'Widget'])
        assert result.exit_code == 2
        assert "unknown entity type 'Widget'" in result.output

