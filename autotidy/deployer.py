"""Keep the worker script at a version-independent location.

The installed package moves whenever the application is upgraded, but the
scheduler entry needs a path that survives upgrades. The worker is copied to
the application data directory and redeployed when its content or the host
version changes. A small JSON record beside it remembers what was deployed.
"""

from __future__ import annotations

import hashlib
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TypedDict

from . import __version__
from .config import APP_DIR_NAME, default_data_dir
from .logger import Logger
from .storage import read_json, write_json_atomic

WORKER_SCRIPT_NAME = "autotidy_worker.py"
DEPLOYMENT_METADATA_NAME = "worker-deployment.json"


class DeploymentRecordDict(TypedDict, total=False):
    """Shape of the deployment record file."""

    appVersion: str
    deployedAt: str
    sourcePath: str
    scriptHash: str


@dataclass
class DeploymentRecord:
    """What was deployed to the stable path, and from where."""

    app_version: str
    deployed_at: datetime
    source_path: str
    script_hash: str

    def to_dict(self) -> DeploymentRecordDict:
        return {
            "appVersion": self.app_version,
            "deployedAt": self.deployed_at.isoformat(),
            "sourcePath": self.source_path,
            "scriptHash": self.script_hash,
        }

    @classmethod
    def from_dict(cls, data: DeploymentRecordDict) -> DeploymentRecord:
        return cls(
            app_version=data["appVersion"],
            deployed_at=datetime.fromisoformat(data["deployedAt"]),
            source_path=data.get("sourcePath", ""),
            script_hash=data.get("scriptHash", ""),
        )


@dataclass
class DeploymentResult:
    """Outcome of deploy_if_needed()."""

    success: bool
    was_updated: bool = False
    source_path: Path | None = None
    deployed_path: Path | None = None
    error_message: str | None = None


def compute_file_hash(file_path: Path, algorithm: str = "sha256") -> str:
    """Compute hash of file contents."""
    hash_func = hashlib.new(algorithm)
    try:
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                hash_func.update(chunk)
        return hash_func.hexdigest()
    except OSError:
        return ""


class WorkerDeployer:
    """Deploys the packaged worker script to the stable path."""

    def __init__(
        self,
        stable_dir: Path | None = None,
        base_dir: Path | None = None,
        app_version: str = __version__,
        logger: Logger | None = None,
        program_files: Path | None = None,
    ) -> None:
        self.stable_dir = stable_dir or default_data_dir()
        self.base_dir = base_dir or Path(__file__).resolve().parent
        self.app_version = app_version
        self.logger = logger or Logger(verbosity=0)
        if program_files is None and os.environ.get("PROGRAMFILES"):
            program_files = Path(os.environ["PROGRAMFILES"])
        self.program_files = program_files

    @property
    def stable_path(self) -> Path:
        return self.stable_dir / WORKER_SCRIPT_NAME

    @property
    def scheduling_path(self) -> Path:
        """Path the scheduler entry must reference. Always the stable path."""
        return self.stable_path

    @property
    def metadata_path(self) -> Path:
        return self.stable_dir / DEPLOYMENT_METADATA_NAME

    def candidate_paths(self) -> list[Path]:
        """Locations probed for the packaged worker, in order."""
        candidates = [
            self.base_dir / WORKER_SCRIPT_NAME,
            self.base_dir / "worker" / WORKER_SCRIPT_NAME,
        ]
        if self.program_files is not None:
            candidates.append(self.program_files / APP_DIR_NAME / "worker" / WORKER_SCRIPT_NAME)
        # Development checkouts
        candidates.append(self.base_dir.parent / "worker" / WORKER_SCRIPT_NAME)
        candidates.append(self.base_dir.parent / "src" / "worker" / WORKER_SCRIPT_NAME)
        return candidates

    def find_packaged_worker(self) -> Path | None:
        for candidate in self.candidate_paths():
            if candidate.is_file():
                self.logger.debug(f"Found worker at {candidate}")
                return candidate
        return None

    def load_record(self) -> DeploymentRecord | None:
        data = read_json(self.metadata_path)
        if data is None:
            return None
        try:
            return DeploymentRecord.from_dict(data)  # type: ignore[arg-type]
        except (KeyError, TypeError, ValueError):
            return None

    def needs_deployment(self, source: Path) -> tuple[bool, str]:
        """Decide whether the stable copy must be refreshed, and why."""
        if not self.stable_path.exists():
            return True, "worker not deployed"

        source_hash = compute_file_hash(source)
        deployed_hash = compute_file_hash(self.stable_path)
        if not source_hash or source_hash != deployed_hash:
            return True, "worker content changed"

        record = self.load_record()
        if record is None:
            return True, "deployment record missing"
        if record.app_version != self.app_version:
            return True, f"version changed from {record.app_version} to {self.app_version}"

        return False, "up to date"

    def deploy_if_needed(self) -> DeploymentResult:
        """Copy the packaged worker to the stable path when it is missing or outdated.

        Repeated calls with an unchanged worker and version write nothing.
        Never raises; failures come back as an unsuccessful result.
        """
        source = self.find_packaged_worker()
        if source is None:
            searched = ", ".join(str(p) for p in self.candidate_paths())
            return DeploymentResult(
                success=False,
                error_message=f"Worker script not found. Searched: {searched}",
            )

        needed, reason = self.needs_deployment(source)
        if not needed:
            self.logger.debug(f"Worker deployment is current: {self.stable_path}")
            return DeploymentResult(
                success=True, source_path=source, deployed_path=self.stable_path
            )

        self.logger.info(f"Deploying worker ({reason})")
        try:
            self.stable_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, self.stable_path)
            record = DeploymentRecord(
                app_version=self.app_version,
                deployed_at=datetime.now(),
                source_path=str(source),
                script_hash=compute_file_hash(self.stable_path),
            )
            write_json_atomic(self.metadata_path, dict(record.to_dict()))
        except OSError as e:
            return DeploymentResult(
                success=False,
                source_path=source,
                error_message=f"Failed to deploy worker: {e}",
            )

        self.logger.success(f"Worker deployed to {self.stable_path}")
        return DeploymentResult(
            success=True, was_updated=True, source_path=source, deployed_path=self.stable_path
        )

    def is_deployment_valid(self) -> bool:
        try:
            return self.stable_path.is_file() and self.stable_path.stat().st_size > 0
        except OSError:
            return False

    def get_execution_path(self) -> Path | None:
        """Stable copy if deployed, else the packaged worker."""
        if self.is_deployment_valid():
            return self.stable_path
        return self.find_packaged_worker()

    def status(self) -> dict[str, str]:
        record = self.load_record()
        return {
            "stable_path": str(self.stable_path),
            "deployed": "yes" if self.is_deployment_valid() else "no",
            "version": record.app_version if record else "-",
            "deployed_at": record.deployed_at.isoformat(timespec="seconds") if record else "-",
        }
