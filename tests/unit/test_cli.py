"""Tests for the vizcheck command line."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from vizcheck import cli
from vizcheck.catalog.vertical_bar_chart import VIZ_NAME
from vizcheck.errors import ConfigurationError
from vizcheck.visualize.inmemory import InMemoryVisualizeApp
from vizcheck.visualize.sample_data import canonical_documents


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ('VIZCHECK_BASE_URL', 'VIZCHECK_BROWSER', 'VIZCHECK_EVIDENCE_DIR',
                 'VIZCHECK_USERNAME', 'VIZCHECK_PASSWORD', 'VIZCHECK_FAIL_FAST'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('VIZCHECK_RETRY_INTERVAL', '0')


class TestArguments:

    def test_flags_override_environment(self):
        args = cli.build_parser().parse_args([
            '--base-url', 'http://kibana.test/', '--browser', 'firefox',
            '--headed', '--no-fail-fast', '--evidence-dir', 'out',
        ])
        settings = cli.build_settings(args, {'VIZCHECK_BASE_URL': 'http://other:5601'})
        assert settings.base_url == 'http://kibana.test'
        assert settings.browser == 'firefox'
        assert settings.headless is False
        assert settings.fail_fast is False
        assert settings.evidence_dir == Path('out')

    def test_environment_used_without_flags(self):
        args = cli.build_parser().parse_args([])
        settings = cli.build_settings(args, {'VIZCHECK_BASE_URL': 'http://other:5601'})
        assert settings.base_url == 'http://other:5601'

    def test_select_all_scenarios(self):
        assert len(cli.select_scenarios([])) == 8

    def test_select_keeps_catalog_order(self):
        selected = cli.select_scenarios(['VB-005', 'VB-002'])
        assert [d.scenario_id for d in selected] == ['VB-002', 'VB-005']

    def test_select_unknown(self):
        with pytest.raises(ConfigurationError, match='VB-042'):
            cli.select_scenarios(['VB-042'])


class TestInMemoryRun:

    def test_text_output(self, capsys):
        assert cli.main(['--in-memory']) == 0
        out = capsys.readouterr().out
        assert '✔ VB-001: should save and load' in out
        assert '✔ Total:' in out
        assert 'across 8 scenarios' in out

    def test_json_output(self, capsys):
        assert cli.main(['--in-memory', '--json', '--scenario', 'VB-003']) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload['overall_passed'] is True
        assert payload['total_scenarios'] == 1
        assert payload['scenarios'][0]['scenario_id'] == 'VB-003'

    def test_log_file(self, tmp_path: Path, capsys):
        log_path = tmp_path / 'logs' / 'run.json'
        assert cli.main(['--in-memory', '--scenario', 'VB-005', '--log-file', str(log_path)]) == 0
        run_log = json.loads(log_path.read_text(encoding='utf-8'))
        assert run_log['overall_passed'] is True
        assert run_log['metadata']['base_url'] == 'in-memory'
        assert run_log['scenarios'][0]['scenario_id'] == 'VB-005'

    def test_evidence_dir(self, tmp_path: Path, capsys):
        assert cli.main(['--in-memory', '--scenario', 'VB-002',
                         '--evidence-dir', str(tmp_path)]) == 0
        assert (tmp_path / 'VB-002' / 'manifest.json').is_file()

    def test_unknown_scenario_exit_code(self, capsys):
        assert cli.main(['--in-memory', '--scenario', 'VB-042']) == 1
        assert 'Unknown scenario' in capsys.readouterr().err

    def test_invalid_settings_exit_code(self, monkeypatch, capsys):
        monkeypatch.setenv('VIZCHECK_BROWSER', 'opera')
        assert cli.main(['--in-memory']) == 1
        assert 'browser must be one of' in capsys.readouterr().err

    def test_malformed_environment_number_exit_code(self, monkeypatch, capsys):
        monkeypatch.setenv('VIZCHECK_RETRY_ATTEMPTS', 'lots')
        assert cli.main(['--in-memory']) == 1
        err = capsys.readouterr().err
        assert 'ERROR: VIZCHECK_RETRY_ATTEMPTS must be an integer' in err

    def test_failing_run_exit_code(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, 'canonical_documents', lambda: [])
        assert cli.main(['--in-memory', '--scenario', 'VB-003']) == 1
        out = capsys.readouterr().out
        assert '✘ VB-003' in out
        assert 'expected: (37, 202,' in out


class _FakeApiClient:
    instances: list[_FakeApiClient] = []

    def __init__(self, settings):
        self.settings = settings
        self.calls: list[str] = []
        _FakeApiClient.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.calls.append('closed')

    async def wait_until_available(self):
        self.calls.append('wait')
        return 'green'

    async def delete_visualizations_titled(self, title):
        self.calls.append(f'delete {title}')
        return 1


class TestBrowserRun:

    def test_cleans_up_then_runs_in_session(self, monkeypatch, capsys):
        sessions: list[str] = []

        @asynccontextmanager
        async def fake_session(settings):
            sessions.append(settings.base_url)
            yield InMemoryVisualizeApp(canonical_documents())

        _FakeApiClient.instances.clear()
        monkeypatch.setattr(cli, 'AppApiClient', _FakeApiClient)
        monkeypatch.setattr(cli, 'browser_session', fake_session)

        code = cli.main(['--base-url', 'http://kibana.test', '--scenario', 'VB-001'])
        assert code == 0
        assert sessions == ['http://kibana.test']
        assert _FakeApiClient.instances[0].calls == [
            'wait', f'delete {VIZ_NAME}', 'closed',
        ]
