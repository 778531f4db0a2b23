"""Keep the OS scheduler entry for the worker consistent with the configuration.

The entry is managed through ``schtasks`` (create from an XML definition,
delete, query, run). The reconciler only ever points the entry at the
deployer's stable path, and ``validate_and_repair`` fixes entries left behind
by an upgrade that moved the application.
"""

from __future__ import annotations

import re
import subprocess
import sys
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol
from xml.sax.saxutils import escape, unescape

from .config import DEFAULT_SCHEDULE_TIME, AppConfig, Frequency, ScheduleSettings, default_config_path
from .deployer import WorkerDeployer
from .logger import Logger

TASK_NAME = "AutoTidy-Organize"
TASK_DESCRIPTION = "Organizes the AutoTidy source folder on a schedule"

DEFAULT_COMMAND_TIMEOUT = 30

# Exit codes reported when the command itself could not run
TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127

_ARGUMENTS_RE = re.compile(r"<Arguments>([^<]+)</Arguments>")
_COMMAND_RE = re.compile(r"<Command>([^<]+)</Command>")
_QUOTE_ENTITIES = {'"': "&quot;"}
_UNQUOTE_ENTITIES = {"&quot;": '"'}


class SchedulerBackend(Protocol):
    """The four scheduler operations the reconciler relies on."""

    def create(self, name: str, definition_path: Path) -> subprocess.CompletedProcess[str]: ...

    def delete(self, name: str) -> subprocess.CompletedProcess[str]: ...

    def query(self, name: str) -> subprocess.CompletedProcess[str]:
        """Exit code 0 if the entry exists; stdout holds its XML definition."""
        ...

    def run(self, name: str) -> subprocess.CompletedProcess[str]: ...


def run_command(
    cmd: list[str],
    timeout: int | None = DEFAULT_COMMAND_TIMEOUT,
) -> subprocess.CompletedProcess[str]:
    """Run a command and return the result."""
    try:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return subprocess.CompletedProcess(
            cmd, TIMEOUT_EXIT_CODE, stdout="", stderr=f"Command timed out after {timeout}s"
        )
    except FileNotFoundError:
        return subprocess.CompletedProcess(
            cmd, NOT_FOUND_EXIT_CODE, stdout="", stderr=f"{cmd[0]} command not found"
        )


class SchtasksBackend:
    """Windows Task Scheduler through schtasks.exe."""

    def __init__(self, timeout: int = DEFAULT_COMMAND_TIMEOUT, executable: str = "schtasks") -> None:
        self.timeout = timeout
        self.executable = executable

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        return run_command([self.executable] + args, timeout=self.timeout)

    def create(self, name: str, definition_path: Path) -> subprocess.CompletedProcess[str]:
        return self._run(["/Create", "/TN", name, "/XML", str(definition_path)])

    def delete(self, name: str) -> subprocess.CompletedProcess[str]:
        return self._run(["/Delete", "/TN", name, "/F"])

    def query(self, name: str) -> subprocess.CompletedProcess[str]:
        return self._run(["/Query", "/TN", name, "/XML"])

    def run(self, name: str) -> subprocess.CompletedProcess[str]:
        return self._run(["/Run", "/TN", name])


def try_parse_time(value: str) -> tuple[int, int] | None:
    """Parse HH:mm. Returns None unless hour is 0-23 and minute is 0-59."""
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 2 or not all(part.isascii() and part.isdigit() for part in parts):
        return None
    hour, minute = int(parts[0]), int(parts[1])
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        return None
    return hour, minute


def _daily() -> str:
    return """\
      <ScheduleByDay>
        <DaysInterval>1</DaysInterval>
      </ScheduleByDay>"""


def _weekly() -> str:
    return """\
      <ScheduleByWeek>
        <DaysOfWeek>
          <Monday />
        </DaysOfWeek>
        <WeeksInterval>1</WeeksInterval>
      </ScheduleByWeek>"""


def _monthly() -> str:
    return """\
      <ScheduleByMonth>
        <DaysOfMonth>
          <Day>1</Day>
        </DaysOfMonth>
        <Months>
          <January /><February /><March /><April /><May /><June />
          <July /><August /><September /><October /><November /><December />
        </Months>
      </ScheduleByMonth>"""


CALENDAR_SCHEDULES: dict[Frequency, Callable[[], str]] = {
    Frequency.DAILY: _daily,
    Frequency.WEEKLY: _weekly,
    Frequency.MONTHLY: _monthly,
}

_unhandled = set(Frequency) - set(CALENDAR_SCHEDULES)
if _unhandled:
    raise RuntimeError(f"No trigger for frequencies: {sorted(f.value for f in _unhandled)}")


def build_triggers(
    schedule: ScheduleSettings, now: datetime | None = None, logger: Logger | None = None
) -> str:
    """Trigger XML for the schedule. Invalid times fall back to 02:00."""
    now = now or datetime.now()
    parsed = try_parse_time(schedule.time)
    if parsed is None:
        if logger:
            logger.warn(f"Invalid schedule time '{schedule.time}', using {DEFAULT_SCHEDULE_TIME}")
        parsed = try_parse_time(DEFAULT_SCHEDULE_TIME)
    hour, minute = parsed  # type: ignore[misc]

    triggers = f"""\
    <CalendarTrigger>
      <StartBoundary>{now:%Y-%m-%d}T{hour:02d}:{minute:02d}:00</StartBoundary>
      <Enabled>true</Enabled>
{CALENDAR_SCHEDULES[schedule.frequency]()}
    </CalendarTrigger>"""

    if schedule.run_on_startup:
        triggers += """
    <LogonTrigger>
      <Enabled>true</Enabled>
    </LogonTrigger>"""
    return triggers


def build_task_definition(command: str, arguments: str, triggers: str) -> str:
    """Full Task Scheduler XML document for one exec action."""
    return f"""\
<?xml version="1.0" encoding="UTF-16"?>
<Task version="1.2" xmlns="http://schemas.microsoft.com/windows/2004/02/mit/task">
  <RegistrationInfo>
    <Description>{escape(TASK_DESCRIPTION)}</Description>
    <Author>AutoTidy</Author>
  </RegistrationInfo>
  <Triggers>
{triggers}
  </Triggers>
  <Principals>
    <Principal id="Author">
      <LogonType>InteractiveToken</LogonType>
      <RunLevel>LeastPrivilege</RunLevel>
    </Principal>
  </Principals>
  <Settings>
    <MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>
    <DisallowStartIfOnBatteries>false</DisallowStartIfOnBatteries>
    <StopIfGoingOnBatteries>false</StopIfGoingOnBatteries>
    <StartWhenAvailable>true</StartWhenAvailable>
    <AllowStartOnDemand>true</AllowStartOnDemand>
    <Enabled>true</Enabled>
    <ExecutionTimeLimit>PT1H</ExecutionTimeLimit>
    <Priority>7</Priority>
  </Settings>
  <Actions Context="Author">
    <Exec>
      <Command>{escape(command, _QUOTE_ENTITIES)}</Command>
      <Arguments>{escape(arguments, _QUOTE_ENTITIES)}</Arguments>
    </Exec>
  </Actions>
</Task>
"""


def extract_arguments(definition: str) -> str | None:
    """Arguments of the entry's exec action, unescaped."""
    match = _ARGUMENTS_RE.search(definition)
    if not match:
        return None
    return unescape(match.group(1), _UNQUOTE_ENTITIES)


def extract_command(definition: str) -> str | None:
    """Program the entry's exec action starts, unescaped."""
    match = _COMMAND_RE.search(definition)
    if not match:
        return None
    return unescape(match.group(1).strip(), _UNQUOTE_ENTITIES)


def first_argument(arguments: str) -> str | None:
    """First word of an argument string, with surrounding quotes removed."""
    arguments = arguments.strip()
    if arguments.startswith('"'):
        end = arguments.find('"', 1)
        return arguments[1:end] if end > 0 else None
    words = arguments.split()
    return words[0] if words else None


class ScheduleState(Enum):
    """Observed state of the scheduler entry."""

    ABSENT = "absent"
    PRESENT_CORRECT = "present-correct"
    PRESENT_STALE = "present-stale"


@dataclass
class ScheduleResult:
    """Outcome of a reconciler operation."""

    success: bool
    message: str = ""
    was_repaired: bool = False


class ScheduleReconciler:
    """Creates, repairs and removes the scheduler entry for the worker."""

    def __init__(
        self,
        backend: SchedulerBackend,
        deployer: WorkerDeployer,
        config_path: Path | None = None,
        logger: Logger | None = None,
        task_name: str = TASK_NAME,
        interpreter: str = sys.executable,
    ) -> None:
        self.backend = backend
        self.deployer = deployer
        self.config_path = config_path
        self.logger = logger or Logger(verbosity=0)
        self.task_name = task_name
        self.interpreter = interpreter

    def task_arguments(self, config: AppConfig) -> str:
        config_path = config.config_path or self.config_path or default_config_path()
        return f'"{self.deployer.scheduling_path}" --config "{config_path}"'

    def create_or_update(self, config: AppConfig, now: datetime | None = None) -> ScheduleResult:
        """Make the entry match the configuration, replacing any existing one."""
        if not config.schedule.enabled:
            removed = self.remove()
            if not removed.success:
                return removed
            return ScheduleResult(True, "Scheduled task removed (scheduling disabled)")

        if not self.deployer.is_deployment_valid():
            deployed = self.deployer.deploy_if_needed()
            if not deployed.success:
                return ScheduleResult(
                    False, f"Cannot create scheduled task: {deployed.error_message}"
                )

        definition = build_task_definition(
            self.interpreter,
            self.task_arguments(config),
            build_triggers(config.schedule, now, self.logger),
        )
        definition_path = Path(tempfile.gettempdir()) / f"autotidy_task_{uuid.uuid4().hex}.xml"

        try:
            definition_path.write_text(definition, encoding="utf-16")
            self.remove()
            result = self.backend.create(self.task_name, definition_path)
        except OSError as e:
            return ScheduleResult(False, f"Error creating scheduled task: {e}")
        finally:
            try:
                definition_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                self.logger.debug(f"Could not remove {definition_path}: {e}")

        if result.returncode != 0:
            return ScheduleResult(
                False, f"Failed to create scheduled task: {result.stderr.strip()}"
            )

        schedule = config.schedule
        self.logger.debug(f"Scheduled task points at {self.deployer.scheduling_path}")
        return ScheduleResult(
            True,
            f"Scheduled task created ({schedule.frequency.value} at {schedule.time})",
        )

    def validate_and_repair(self, config: AppConfig, now: datetime | None = None) -> ScheduleResult:
        """Detect drift in the entry and recreate it. Called at every startup."""
        if not config.schedule.enabled:
            return ScheduleResult(True, "Scheduling disabled, no validation needed")

        query = self.backend.query(self.task_name)
        if query.returncode in (TIMEOUT_EXIT_CODE, NOT_FOUND_EXIT_CODE):
            return ScheduleResult(False, f"Task scheduler unavailable: {query.stderr.strip()}")

        if query.returncode != 0:
            self.logger.info("Scheduled task missing, recreating")
            return self._repair(config, now, "Scheduled task recreated")

        drift = self.find_drift(query.stdout)
        if drift is not None:
            self.logger.info(f"Scheduled task is stale: {drift}")
            return self._repair(config, now, "Scheduled task repaired (stale path after update)")

        if not self.deployer.is_deployment_valid():
            self.logger.info("Deployed worker missing, redeploying")
            deployed = self.deployer.deploy_if_needed()
            if not deployed.success:
                return ScheduleResult(False, f"Cannot repair: {deployed.error_message}")
            return self._repair(config, now, "Scheduled task repaired (worker redeployed)")

        return ScheduleResult(True, "Scheduled task is valid")

    def find_drift(self, definition: str) -> str | None:
        """Describe how a stored definition differs from what create_or_update writes.

        Both the interpreter and the worker path are compared exactly; either
        one goes stale when an upgrade replaces the installation.
        """
        command = extract_command(definition)
        if command != self.interpreter:
            return f"runs {command or 'nothing'}, expected {self.interpreter}"

        script = first_argument(extract_arguments(definition) or "")
        expected = str(self.deployer.scheduling_path)
        if script != expected:
            return f"references {script or 'nothing'}, expected {expected}"
        return None

    def _repair(self, config: AppConfig, now: datetime | None, message: str) -> ScheduleResult:
        result = self.create_or_update(config, now)
        if not result.success:
            return result
        return ScheduleResult(True, message, was_repaired=True)

    def inspect(self) -> ScheduleState:
        query = self.backend.query(self.task_name)
        if query.returncode != 0:
            return ScheduleState.ABSENT
        if self.find_drift(query.stdout) is not None:
            return ScheduleState.PRESENT_STALE
        if not self.deployer.is_deployment_valid():
            return ScheduleState.PRESENT_STALE
        return ScheduleState.PRESENT_CORRECT

    def remove(self) -> ScheduleResult:
        """Delete the entry. A missing entry counts as removed."""
        result = self.backend.delete(self.task_name)
        if result.returncode in (0, 1):
            return ScheduleResult(True, "Scheduled task removed")
        return ScheduleResult(False, f"Failed to remove scheduled task: {result.stderr.strip()}")

    def run_now(self) -> ScheduleResult:
        result = self.backend.run(self.task_name)
        if result.returncode == 0:
            return ScheduleResult(True, "Scheduled task started")
        return ScheduleResult(False, f"Failed to run scheduled task: {result.stderr.strip()}")
