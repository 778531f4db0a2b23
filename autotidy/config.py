"""Configuration model for autotidy.

The desktop shell writes a JSON (or YAML) document such as:

    {
        "sourceFolder": "%USERPROFILE%\\Downloads",
        "fileAgeThreshold": 24,
        "fileSizeThreshold": 0,
        "duplicateHandling": "rename",
        "categories": [
            {"name": "Images", "extensions": [".jpg", ".png"],
             "destination": "%USERPROFILE%\\Pictures", "enabled": true}
        ],
        "excludePatterns": ["*.tmp", "~*"],
        "schedule": {"enabled": true, "frequency": "daily",
                     "time": "02:00", "runOnStartup": false},
        "logging": {"enabled": true, "logPath": "...", "logLevel": "info",
                    "maxLogFiles": 12}
    }

snake_case keys are accepted as well. Enumerated fields are validated when the
document is loaded; unknown values raise ConfigError instead of falling back.

Environment Variables:
    AUTOTIDY_DATA_DIR               Application data directory
    AUTOTIDY_SOURCE_FOLDER          Source folder
    AUTOTIDY_DUPLICATE_HANDLING     rename or skip
    AUTOTIDY_FILE_AGE_THRESHOLD     Minimum file age in hours
    AUTOTIDY_FILE_SIZE_THRESHOLD    Minimum file size in KB
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypedDict, TypeVar

import yaml

from .errors import ConfigError

# Application directory name under the machine-wide data folder
APP_DIR_NAME = "AutoTidy"

# Configuration file kept in the data directory
CONFIG_FILE_NAME = "config.json"

DEFAULT_EXCLUDE_PATTERNS = ["*.tmp", "~*", "*.crdownload", "*.part"]

DEFAULT_SCHEDULE_TIME = "02:00"

_WINDOWS_VAR = re.compile(r"%([^%]+)%")

E = TypeVar("E", bound=Enum)


class DuplicateStrategy(Enum):
    """How to handle a destination name that is already taken."""

    RENAME = "rename"
    SKIP = "skip"


class Frequency(Enum):
    """How often the scheduled worker runs."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class LogLevel(Enum):
    """Minimum level written to the log file."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return list(LogLevel).index(self)


class CategoryDict(TypedDict, total=False):
    """Category rule as stored on disk."""

    name: str
    extensions: list[str]
    destination: str
    enabled: bool


class ScheduleDict(TypedDict, total=False):
    """Schedule settings as stored on disk."""

    enabled: bool
    frequency: str
    time: str
    runOnStartup: bool


class LoggingDict(TypedDict, total=False):
    """Logging settings as stored on disk."""

    enabled: bool
    logPath: str
    logLevel: str
    maxLogFiles: int


class ConfigDict(TypedDict, total=False):
    """Configuration dictionary type."""

    sourceFolder: str
    fileAgeThreshold: int
    fileSizeThreshold: int
    duplicateHandling: str
    categories: list[CategoryDict]
    excludePatterns: list[str]
    schedule: ScheduleDict
    logging: LoggingDict


def parse_enum(enum_cls: type[E], value: Any, field_name: str) -> E:
    """Convert a raw value to a member of a closed enumeration."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(
            f"Unsupported {field_name} '{value}' (expected one of: {allowed})"
        ) from None


def _lookup(data: Any, camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _non_negative_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{field_name} must be an integer, got {value!r}") from None
    if number < 0:
        raise ConfigError(f"{field_name} must not be negative, got {number}")
    return number


def expand_path(value: str) -> Path:
    """Expand %VAR%, $VAR and ~ in a configured path."""
    expanded = _WINDOWS_VAR.sub(
        lambda m: os.environ.get(m.group(1), m.group(0)), value
    )
    return Path(os.path.expanduser(os.path.expandvars(expanded)))


def normalize_extension(ext: str) -> str:
    """Lowercase an extension and make sure it has a leading dot."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def default_data_dir() -> Path:
    """Directory holding configuration, history, statistics and the worker."""
    if os.environ.get("AUTOTIDY_DATA_DIR"):
        return Path(os.environ["AUTOTIDY_DATA_DIR"])
    if os.environ.get("PROGRAMDATA"):
        return Path(os.environ["PROGRAMDATA"]) / APP_DIR_NAME
    if os.environ.get("XDG_DATA_HOME"):
        return Path(os.environ["XDG_DATA_HOME"]) / APP_DIR_NAME.lower()
    return Path.home() / ".local" / "share" / APP_DIR_NAME.lower()


def default_config_path() -> Path:
    return default_data_dir() / CONFIG_FILE_NAME


@dataclass
class CategoryRule:
    """Extensions that route files to one destination folder."""

    name: str
    extensions: list[str] = field(default_factory=list)
    destination: str = ""
    enabled: bool = True

    def __post_init__(self) -> None:
        # Ordered, de-duplicated, normalized
        seen: dict[str, None] = {}
        for ext in self.extensions:
            normalized = normalize_extension(ext)
            if normalized:
                seen.setdefault(normalized, None)
        self.extensions = list(seen)

    @property
    def destination_path(self) -> Path:
        return expand_path(self.destination)

    def has_extension(self, ext: str) -> bool:
        return ext.lower() in self.extensions

    @classmethod
    def from_dict(cls, data: CategoryDict) -> CategoryRule:
        """Create from dictionary."""
        name = str(data.get("name", "")).strip()
        if not name:
            raise ConfigError("Category is missing a name")
        extensions = data.get("extensions") or []
        if isinstance(extensions, str):
            extensions = extensions.split(",")
        return cls(
            name=name,
            extensions=list(extensions),
            destination=str(data.get("destination", "")),
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> CategoryDict:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "extensions": list(self.extensions),
            "destination": self.destination,
            "enabled": self.enabled,
        }


@dataclass
class ScheduleSettings:
    """When the scheduled worker runs."""

    enabled: bool = False
    frequency: Frequency = Frequency.DAILY
    time: str = DEFAULT_SCHEDULE_TIME
    run_on_startup: bool = False

    @classmethod
    def from_dict(cls, data: ScheduleDict) -> ScheduleSettings:
        """Create from dictionary."""
        return cls(
            enabled=bool(data.get("enabled", False)),
            frequency=parse_enum(Frequency, data.get("frequency", "daily"), "schedule frequency"),
            time=str(data.get("time") or DEFAULT_SCHEDULE_TIME).strip(),
            run_on_startup=bool(_lookup(data, "runOnStartup", "run_on_startup", False)),
        )

    def to_dict(self) -> ScheduleDict:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "frequency": self.frequency.value,
            "time": self.time,
            "runOnStartup": self.run_on_startup,
        }


@dataclass
class LoggingSettings:
    """Where and how much the logger writes to disk."""

    enabled: bool = True
    log_path: str = ""
    level: LogLevel = LogLevel.INFO
    max_log_files: int = 12

    @property
    def log_dir(self) -> Path:
        if self.log_path:
            return expand_path(self.log_path)
        return default_data_dir() / "logs"

    @classmethod
    def from_dict(cls, data: LoggingDict) -> LoggingSettings:
        """Create from dictionary."""
        return cls(
            enabled=bool(data.get("enabled", True)),
            log_path=str(_lookup(data, "logPath", "log_path", "") or ""),
            level=parse_enum(LogLevel, _lookup(data, "logLevel", "log_level", "info"), "log level"),
            max_log_files=_non_negative_int(
                _lookup(data, "maxLogFiles", "max_log_files", 12), "maxLogFiles"
            ),
        )

    def to_dict(self) -> LoggingDict:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "logPath": self.log_path,
            "logLevel": self.level.value,
            "maxLogFiles": self.max_log_files,
        }


@dataclass
class AppConfig:
    """Everything the organizing core reads from the application configuration."""

    source_folder: str = ""
    file_age_threshold: int = 24  # hours
    file_size_threshold: int = 0  # KB, 0 = no limit
    duplicate_handling: DuplicateStrategy = DuplicateStrategy.RENAME
    categories: list[CategoryRule] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_PATTERNS.copy())
    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    def __post_init__(self) -> None:
        names: set[str] = set()
        for category in self.categories:
            key = category.name.lower()
            if key in names:
                raise ConfigError(f"Duplicate category name: {category.name}")
            names.add(key)

    @property
    def source_path(self) -> Path:
        return expand_path(self.source_folder)

    @property
    def enabled_categories(self) -> list[CategoryRule]:
        return [c for c in self.categories if c.enabled]

    @property
    def min_size_bytes(self) -> int:
        return self.file_size_threshold * 1024

    @classmethod
    def from_dict(cls, data: ConfigDict, config_path: Path | None = None) -> AppConfig:
        """Create config from dictionary, validating every enumerated field."""
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        config = cls(config_path=config_path)
        config.source_folder = str(_lookup(data, "sourceFolder", "source_folder", "") or "")
        config.file_age_threshold = _non_negative_int(
            _lookup(data, "fileAgeThreshold", "file_age_threshold", 24), "fileAgeThreshold"
        )
        config.file_size_threshold = _non_negative_int(
            _lookup(data, "fileSizeThreshold", "file_size_threshold", 0), "fileSizeThreshold"
        )
        config.duplicate_handling = parse_enum(
            DuplicateStrategy,
            _lookup(data, "duplicateHandling", "duplicate_handling", "rename"),
            "duplicate handling",
        )
        config.categories = [
            CategoryRule.from_dict(item) for item in data.get("categories") or []
        ]
        patterns = _lookup(data, "excludePatterns", "exclude_patterns", None)
        if patterns is not None:
            config.exclude_patterns = [p.strip() for p in patterns if p and p.strip()]
        if data.get("schedule"):
            config.schedule = ScheduleSettings.from_dict(data["schedule"])
        if data.get("logging"):
            config.logging = LoggingSettings.from_dict(data["logging"])

        config.__post_init__()
        return config

    def to_dict(self) -> ConfigDict:
        """Convert to dictionary for JSON serialization."""
        return {
            "sourceFolder": self.source_folder,
            "fileAgeThreshold": self.file_age_threshold,
            "fileSizeThreshold": self.file_size_threshold,
            "duplicateHandling": self.duplicate_handling.value,
            "categories": [c.to_dict() for c in self.categories],
            "excludePatterns": list(self.exclude_patterns),
            "schedule": self.schedule.to_dict(),
            "logging": self.logging.to_dict(),
        }


def default_config() -> AppConfig:
    """Stock configuration used when no configuration file exists yet."""
    home = Path.home()
    downloads = home / "Downloads"
    documents = home / "Documents"

    def rule(name: str, exts: str, dest: Path, enabled: bool = True) -> CategoryRule:
        return CategoryRule(name, exts.split(), str(dest), enabled)

    return AppConfig(
        source_folder=str(downloads),
        categories=[
            rule("Images", ".jpg .jpeg .png .gif .bmp .svg .webp .ico .tiff .tif", home / "Pictures"),
            rule("Documents", ".pdf .docx .doc .txt .rtf .odt .tex .wpd", documents),
            rule("Spreadsheets", ".xlsx .xls .csv .ods .xlsm", documents / "Spreadsheets"),
            rule("Presentations", ".pptx .ppt .odp .key", documents / "Presentations"),
            rule("Archives", ".zip .rar .7z .tar .gz .bz2 .xz .iso", documents / "Archives"),
            rule("Videos", ".mp4 .avi .mkv .mov .wmv .flv .webm .m4v", home / "Videos"),
            rule("Audio", ".mp3 .wav .flac .m4a .ogg .aac .wma .opus", home / "Music"),
            rule("Executables", ".exe .msi .bat .cmd .ps1", downloads / "Executables", False),
            rule(
                "Code",
                ".py .js .html .css .cpp .cs .java .php .rb .go .rs .ts .jsx .tsx .vue .json .xml .yaml .yml",
                documents / "Code",
                False,
            ),
        ],
    )


def load_config_file(config_path: Path) -> ConfigDict:
    """Load a configuration document from a JSON or YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8-sig") as f:
            if config_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {config_path} must be a mapping")
    return data


def load_env_config() -> ConfigDict:
    """Load configuration overrides from environment variables."""
    config: ConfigDict = {}

    if os.environ.get("AUTOTIDY_SOURCE_FOLDER"):
        config["sourceFolder"] = os.environ["AUTOTIDY_SOURCE_FOLDER"]
    if os.environ.get("AUTOTIDY_DUPLICATE_HANDLING"):
        config["duplicateHandling"] = os.environ["AUTOTIDY_DUPLICATE_HANDLING"]
    if os.environ.get("AUTOTIDY_FILE_AGE_THRESHOLD"):
        config["fileAgeThreshold"] = os.environ["AUTOTIDY_FILE_AGE_THRESHOLD"]  # type: ignore[typeddict-item]
    if os.environ.get("AUTOTIDY_FILE_SIZE_THRESHOLD"):
        config["fileSizeThreshold"] = os.environ["AUTOTIDY_FILE_SIZE_THRESHOLD"]  # type: ignore[typeddict-item]

    return config


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration (file < environment).

    A missing file yields the stock configuration.
    """
    path = config_path or default_config_path()
    if path.exists():
        file_config = load_config_file(path)
    else:
        file_config = default_config().to_dict()

    merged: ConfigDict = {**file_config, **load_env_config()}
    return AppConfig.from_dict(merged, config_path=path)


def save_config(config: AppConfig, config_path: Path | None = None) -> Path:
    """Write the configuration as indented JSON and return the path used."""
    path = config_path or config.config_path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)
    config.config_path = path
    return path
