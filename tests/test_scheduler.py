"""Tests for the scheduler module."""
from __future__ import annotations

import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest

from autotidy.config import AppConfig
from autotidy.config import Frequency
from autotidy.config import ScheduleSettings
from autotidy.deployer import WORKER_SCRIPT_NAME
from autotidy.deployer import WorkerDeployer
from autotidy.scheduler import build_task_definition
from autotidy.scheduler import build_triggers
from autotidy.scheduler import CALENDAR_SCHEDULES
from autotidy.scheduler import extract_arguments
from autotidy.scheduler import extract_command
from autotidy.scheduler import first_argument
from autotidy.scheduler import run_command
from autotidy.scheduler import ScheduleReconciler
from autotidy.scheduler import ScheduleState
from autotidy.scheduler import SchtasksBackend
from autotidy.scheduler import TASK_NAME
from autotidy.scheduler import try_parse_time

if TYPE_CHECKING:
    from conftest import FakeSchedulerBackend


def completed(returncode: int, stdout: str = '', stderr: str = '') -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(['schtasks'], returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def deployer(tmp_path: Path) -> WorkerDeployer:
    base = tmp_path / 'install' / 'autotidy'
    (base / 'worker').mkdir(parents=True)
    (base / 'worker' / WORKER_SCRIPT_NAME).write_text('print("worker")\n')
    return WorkerDeployer(stable_dir=tmp_path / 'stable', base_dir=base, program_files=tmp_path / 'pf')


@pytest.fixture
def reconciler(backend: FakeSchedulerBackend, deployer: WorkerDeployer, tmp_path: Path) -> ScheduleReconciler:
    return ScheduleReconciler(
        backend, deployer, config_path=tmp_path / 'config.json', interpreter='C:\\Python\\python.exe'
    )


@pytest.fixture
def scheduled_config() -> AppConfig:
    return AppConfig(schedule=ScheduleSettings(enabled=True, frequency=Frequency.DAILY, time='03:15'))


class TestTryParseTime:
    """Tests for the try_parse_time function."""

    @pytest.mark.parametrize(('value', 'expected'), [('02:00', (2, 0)), ('23:59', (23, 59)), ('0:5', (0, 5))])
    def test_accepts(self, value: str, expected: tuple[int, int]) -> None:
        """Test valid times parse to hour and minute."""
        assert try_parse_time(value) == expected

    @pytest.mark.parametrize(
        'value', ['25:00', '12:60', '1230', '', '12:30:00', 'ab:cd', '-1:30', ' 1:30', '²:00', '١٢:٣٠'],
    )
    def test_rejects(self, value: str) -> None:
        """Test malformed or out-of-range times are rejected."""
        assert try_parse_time(value) is None


class TestBuildTriggers:
    """Tests for the build_triggers function."""

    def test_every_frequency_has_a_trigger(self) -> None:
        """Test every frequency maps to a calendar schedule."""
        assert set(CALENDAR_SCHEDULES) == set(Frequency)
        for frequency in Frequency:
            xml = build_triggers(ScheduleSettings(frequency=frequency), datetime(2024, 5, 1))
            assert '<CalendarTrigger>' in xml

    def test_daily(self) -> None:
        """Test the daily trigger runs every day at the configured time."""
        xml = build_triggers(ScheduleSettings(time='03:15'), datetime(2024, 5, 1, 12, 0))

        assert '<StartBoundary>2024-05-01T03:15:00</StartBoundary>' in xml
        assert '<DaysInterval>1</DaysInterval>' in xml

    def test_weekly(self) -> None:
        """Test the weekly trigger runs on Mondays."""
        xml = build_triggers(ScheduleSettings(frequency=Frequency.WEEKLY), datetime(2024, 5, 1))

        assert '<Monday />' in xml
        assert '<WeeksInterval>1</WeeksInterval>' in xml

    def test_monthly(self) -> None:
        """Test the monthly trigger runs on day 1 of every month."""
        xml = build_triggers(ScheduleSettings(frequency=Frequency.MONTHLY), datetime(2024, 5, 1))

        assert '<Day>1</Day>' in xml
        assert '<December />' in xml

    def test_invalid_time_falls_back(self) -> None:
        """Test an invalid time produces the 02:00 default instead of a broken trigger."""
        logger = MagicMock()

        xml = build_triggers(ScheduleSettings(time='25:00'), datetime(2024, 5, 1), logger)

        assert '<StartBoundary>2024-05-01T02:00:00</StartBoundary>' in xml
        logger.warn.assert_called_once()

    def test_run_on_startup_adds_logon_trigger(self) -> None:
        """Test the logon trigger is only present when requested."""
        assert '<LogonTrigger>' in build_triggers(ScheduleSettings(run_on_startup=True))
        assert '<LogonTrigger>' not in build_triggers(ScheduleSettings())


class TestTaskDefinition:
    """Tests for building and reading task definitions."""

    def test_arguments_are_escaped_and_extracted(self) -> None:
        """Test quoted paths survive the XML round trip."""
        arguments = '"C:\\Data\\A&B\\autotidy_worker.py" --config "C:\\Data\\config.json"'

        xml = build_task_definition('python.exe', arguments, build_triggers(ScheduleSettings()))

        assert '&amp;' in xml
        assert '&quot;' in xml
        assert extract_arguments(xml) == arguments

    def test_settings(self) -> None:
        """Test the task ignores overlapping runs and is bounded to one hour."""
        xml = build_task_definition('python.exe', 'w.py', build_triggers(ScheduleSettings()))

        assert xml.startswith('<?xml version="1.0" encoding="UTF-16"?>')
        assert '<MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>' in xml
        assert '<StartWhenAvailable>true</StartWhenAvailable>' in xml
        assert '<ExecutionTimeLimit>PT1H</ExecutionTimeLimit>' in xml

    def test_extract_without_arguments(self) -> None:
        """Test definitions without arguments yield None."""
        assert extract_arguments('<Task></Task>') is None
        assert extract_command('<Task></Task>') is None

    def test_command_is_extracted(self) -> None:
        """Test the interpreter path survives the XML round trip."""
        xml = build_task_definition('C:\\Py "3"\\python.exe', 'w.py', build_triggers(ScheduleSettings()))

        assert extract_command(xml) == 'C:\\Py "3"\\python.exe'

    @pytest.mark.parametrize(
        ('arguments', 'expected'),
        [
            ('"C:\\A B\\w.py" --config "c.json"', 'C:\\A B\\w.py'),
            ('w.py --config c.json', 'w.py'),
            ('"unterminated', None),
            ('', None),
        ],
    )
    def test_first_argument(self, arguments: str, expected: str | None) -> None:
        """Test the worker path is taken from the first, possibly quoted, argument."""
        assert first_argument(arguments) == expected


class TestCreateOrUpdate:
    """Tests for the create_or_update method."""

    def test_creates_task_pointing_at_stable_path(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend,
        deployer: WorkerDeployer, scheduled_config: AppConfig, tmp_path: Path,
    ) -> None:
        """Test the worker is deployed and the entry references the stable copy."""
        result = reconciler.create_or_update(scheduled_config)

        assert result.success, result.message
        assert deployer.is_deployment_valid()
        arguments = extract_arguments(backend.tasks[TASK_NAME])
        assert arguments == f'"{deployer.stable_path}" --config "{tmp_path / "config.json"}"'
        assert '<Command>C:\\Python\\python.exe</Command>' in backend.tasks[TASK_NAME]
        assert backend.calls == ['delete', 'create']

    def test_definition_file_is_unique_and_removed(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test each call stages its own temp file and cleans it up."""
        reconciler.create_or_update(scheduled_config)
        reconciler.create_or_update(scheduled_config)

        first, second = backend.definition_paths
        assert first != second
        assert first.parent == Path(tempfile.gettempdir())
        assert first.name.startswith('autotidy_task_')
        assert not first.exists()
        assert not second.exists()

    def test_definition_file_removed_on_failure(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test a failed create still removes the staged definition."""
        backend.fail_create = True

        result = reconciler.create_or_update(scheduled_config)

        assert result.success is False
        assert 'Access is denied' in result.message
        assert not backend.definition_paths[0].exists()

    def test_disabled_removes_task(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test disabling the schedule deletes the entry."""
        reconciler.create_or_update(scheduled_config)
        scheduled_config.schedule.enabled = False

        result = reconciler.create_or_update(scheduled_config)

        assert result.success
        assert backend.tasks == {}

    def test_missing_worker_fails(self, backend: FakeSchedulerBackend, tmp_path: Path) -> None:
        """Test no entry is created when the worker cannot be deployed."""
        deployer = WorkerDeployer(stable_dir=tmp_path / 'stable', base_dir=tmp_path / 'none' / 'autotidy')
        reconciler = ScheduleReconciler(backend, deployer)

        result = reconciler.create_or_update(AppConfig(schedule=ScheduleSettings(enabled=True)))

        assert result.success is False
        assert result.message.startswith('Cannot create scheduled task')
        assert backend.tasks == {}


class TestValidateAndRepair:
    """Tests for the validate_and_repair method."""

    def test_disabled_is_noop(self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend) -> None:
        """Test nothing is queried when scheduling is disabled."""
        result = reconciler.validate_and_repair(AppConfig())

        assert result.success and not result.was_repaired
        assert backend.calls == []

    def test_absent_task_is_recreated(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test a missing entry is created and reported as repaired."""
        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success and result.was_repaired
        assert TASK_NAME in backend.tasks
        assert reconciler.inspect() == ScheduleState.PRESENT_CORRECT

    def test_stale_path_is_repaired(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend,
        deployer: WorkerDeployer, scheduled_config: AppConfig,
    ) -> None:
        """Test an entry left over from an old install path is rewritten."""
        deployer.deploy_if_needed()
        old = build_task_definition(
            reconciler.interpreter,
            '"C:\\Program Files\\AutoTidy 0.9\\worker\\autotidy_worker.py" --config "c.json"',
            build_triggers(ScheduleSettings()),
        )
        backend.tasks[TASK_NAME] = old
        assert reconciler.inspect() == ScheduleState.PRESENT_STALE

        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success and result.was_repaired
        assert 'stale path after update' in result.message
        assert str(deployer.stable_path) in (extract_arguments(backend.tasks[TASK_NAME]) or '')
        assert reconciler.inspect() == ScheduleState.PRESENT_CORRECT

    def test_stale_interpreter_is_repaired(
        self, backend: FakeSchedulerBackend, deployer: WorkerDeployer,
        scheduled_config: AppConfig, tmp_path: Path,
    ) -> None:
        """Test an entry running the interpreter of a replaced install is rewritten."""
        old_python = str(tmp_path / 'old-venv-1.0' / 'python')
        new_python = str(tmp_path / 'newvenv' / 'python')
        old = ScheduleReconciler(backend, deployer, config_path=tmp_path / 'config.json', interpreter=old_python)
        old.create_or_update(scheduled_config)
        reconciler = ScheduleReconciler(
            backend, deployer, config_path=tmp_path / 'config.json', interpreter=new_python
        )
        assert reconciler.inspect() == ScheduleState.PRESENT_STALE

        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success and result.was_repaired
        assert extract_command(backend.tasks[TASK_NAME]) == new_python
        assert reconciler.inspect() == ScheduleState.PRESENT_CORRECT

    def test_worker_path_must_match_exactly(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend,
        deployer: WorkerDeployer, scheduled_config: AppConfig,
    ) -> None:
        """Test a path that merely ends with the stable path counts as stale."""
        deployer.deploy_if_needed()
        backend.tasks[TASK_NAME] = build_task_definition(
            reconciler.interpreter,
            f'"C:\\old{deployer.stable_path}" --config "c.json"',
            build_triggers(ScheduleSettings()),
        )

        assert reconciler.inspect() == ScheduleState.PRESENT_STALE
        assert reconciler.validate_and_repair(scheduled_config).was_repaired
        assert first_argument(extract_arguments(backend.tasks[TASK_NAME]) or '') == str(deployer.stable_path)

    def test_missing_artifact_is_redeployed(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend,
        deployer: WorkerDeployer, scheduled_config: AppConfig,
    ) -> None:
        """Test a deleted stable copy is redeployed and the entry recreated."""
        reconciler.create_or_update(scheduled_config)
        deployer.stable_path.unlink()
        assert reconciler.inspect() == ScheduleState.PRESENT_STALE

        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success and result.was_repaired
        assert deployer.is_deployment_valid()

    def test_valid_task_is_left_alone(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test a correct entry is only queried."""
        reconciler.create_or_update(scheduled_config)
        backend.calls.clear()

        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success and not result.was_repaired
        assert result.message == 'Scheduled task is valid'
        assert backend.calls == ['query']

    def test_unavailable_scheduler(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test a hung or missing scheduler command is a failed result, not a repair loop."""
        backend.query = MagicMock(return_value=completed(124, stderr='Command timed out after 30s'))  # type: ignore[method-assign]

        result = reconciler.validate_and_repair(scheduled_config)

        assert result.success is False
        assert 'timed out' in result.message
        assert 'create' not in backend.calls


class TestRemoveAndRun:
    """Tests for remove and run_now."""

    def test_remove_missing_task_succeeds(self, reconciler: ScheduleReconciler) -> None:
        """Test removing an absent entry is not an error."""
        assert reconciler.remove().success

    def test_remove_failure(self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend) -> None:
        """Test other delete failures are reported."""
        backend.delete = MagicMock(return_value=completed(5, stderr='denied'))  # type: ignore[method-assign]

        result = reconciler.remove()

        assert result.success is False
        assert 'denied' in result.message

    def test_run_now(
        self, reconciler: ScheduleReconciler, backend: FakeSchedulerBackend, scheduled_config: AppConfig,
    ) -> None:
        """Test the entry can be started on demand."""
        assert reconciler.run_now().success is False

        reconciler.create_or_update(scheduled_config)

        assert reconciler.run_now().success is True
        assert backend.calls[-1] == 'run'


class TestSchtasksBackend:
    """Tests for the schtasks command wrapper."""

    @patch('autotidy.scheduler.run_command')
    def test_commands(self, mock_run: MagicMock) -> None:
        """Test each operation maps to its schtasks arguments."""
        mock_run.return_value = completed(0)
        backend = SchtasksBackend(timeout=5)

        backend.create('T', Path('def.xml'))
        backend.delete('T')
        backend.query('T')
        backend.run('T')

        assert [c.args[0] for c in mock_run.call_args_list] == [
            ['schtasks', '/Create', '/TN', 'T', '/XML', 'def.xml'],
            ['schtasks', '/Delete', '/TN', 'T', '/F'],
            ['schtasks', '/Query', '/TN', 'T', '/XML'],
            ['schtasks', '/Run', '/TN', 'T'],
        ]
        assert all(c.kwargs['timeout'] == 5 for c in mock_run.call_args_list)


class TestRunCommand:
    """Tests for the run_command function."""

    @patch('autotidy.scheduler.subprocess.run')
    def test_timeout(self, mock_run: MagicMock) -> None:
        """Test a hung command returns exit code 124."""
        mock_run.side_effect = subprocess.TimeoutExpired(['schtasks'], 30)

        result = run_command(['schtasks', '/Query'], timeout=30)

        assert result.returncode == 124
        assert result.stderr == 'Command timed out after 30s'

    @patch('autotidy.scheduler.subprocess.run')
    def test_not_found(self, mock_run: MagicMock) -> None:
        """Test a missing executable returns exit code 127."""
        mock_run.side_effect = FileNotFoundError()

        result = run_command(['schtasks', '/Query'])

        assert result.returncode == 127
        assert 'schtasks command not found' in result.stderr
