"""
Configuration for tabshelf.

Every section is a dataclass whose field defaults are read from the packaged
defaults.yaml. A YAML or JSON file can replace any subset of the sections,
and TABSHELF_<SECTION>_<KEY> environment variables win over both.

Library settings (sync paths, strategy, auto-sync) are not configuration:
they live in the entity store and are edited at runtime.
"""

import json
import logging
import os
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_defaults: Optional[dict[str, dict[str, Any]]] = None


def _read_defaults() -> dict[str, dict[str, Any]]:
    """Parse defaults.yaml once; a missing or broken file means no defaults."""
    global _defaults
    if _defaults is None:
        try:
            _defaults = yaml.safe_load(DEFAULTS_FILE.read_text(encoding="utf-8")) or {}
        except FileNotFoundError:
            logger.warning(f"No packaged defaults at {DEFAULTS_FILE}")
            _defaults = {}
        except yaml.YAMLError as e:
            logger.error(f"Ignoring unreadable defaults file {DEFAULTS_FILE}: {e}")
            _defaults = {}
    return _defaults


def _default(section: str, key: str, fallback: Any = None) -> Callable[[], Any]:
    """Build a default_factory returning defaults.yaml's value or fallback."""

    def factory() -> Any:
        value = _read_defaults().get(section, {}).get(key, fallback)
        # Lists are mutable: every instance gets its own copy.
        return list(value) if isinstance(value, list) else value

    return factory


@dataclass
class StorageConfig:
    """Where the library keeps its database, managed files and covers."""

    data_dir: str = field(default_factory=_default("storage", "data_dir", "~/.tabshelf"))
    database_name: str = field(
        default_factory=_default("storage", "database_name", "tabshelf.db")
    )
    legacy_json_name: str = field(
        default_factory=_default("storage", "legacy_json_name", "tabs.json")
    )

    @property
    def root(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def database_path(self) -> Path:
        return self.root / "data" / self.database_name

    @property
    def legacy_json_path(self) -> Path:
        return self.root / "data" / self.legacy_json_name

    @property
    def files_dir(self) -> Path:
        """Directory holding copies of managed tab files."""
        return self.root / "storage"

    @property
    def covers_dir(self) -> Path:
        return self.root / "covers"


@dataclass
class SyncConfig:
    """Directory synchronization."""

    extensions: list[str] = field(
        default_factory=_default(
            "sync", "extensions", [".pdf", ".gp", ".gp3", ".gp4", ".gp5", ".gpx"]
        )
    )
    copy_attempts: int = field(default_factory=_default("sync", "copy_attempts", 1000))


@dataclass
class CoversConfig:
    """Cover fetch pool and the iTunes resolver."""

    workers: int = field(default_factory=_default("covers", "workers", 3))
    queue_size: int = field(default_factory=_default("covers", "queue_size", 100))
    country: str = field(default_factory=_default("covers", "country", "US"))
    language: str = field(default_factory=_default("covers", "language", "en_us"))
    timeout: float = field(default_factory=_default("covers", "timeout", 10.0))
    search_url: str = field(
        default_factory=_default("covers", "search_url", "https://itunes.apple.com/search")
    )
    artwork_size: str = field(default_factory=_default("covers", "artwork_size", "600x600bb"))


@dataclass
class WatchConfig:
    """Directory watcher."""

    extensions: list[str] = field(
        default_factory=_default("watch", "extensions", [".pdf", ".gp", ".gp5", ".gpx"])
    )
    debounce_ms: int = field(default_factory=_default("watch", "debounce_ms", 1000))
    sync_on_change: bool = field(default_factory=_default("watch", "sync_on_change", True))


@dataclass
class LoggingConfig:
    """Root logger level and format for the CLI."""

    level: str = field(default_factory=_default("logging", "level", "INFO"))
    format: str = field(
        default_factory=_default(
            "logging", "format", "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
        )
    )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_list(value: str) -> list[str]:
    """Split a comma separated value, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


_SECTION_TYPES: dict[str, type] = {
    "storage": StorageConfig,
    "sync": SyncConfig,
    "covers": CoversConfig,
    "watch": WatchConfig,
    "logging": LoggingConfig,
}

# (section, key) -> converter; the variable name is TABSHELF_<SECTION>_<KEY>.
_ENV_OVERRIDES: dict[tuple[str, str], Callable[[str], Any]] = {
    ("storage", "data_dir"): str,
    ("storage", "database_name"): str,
    ("sync", "extensions"): _parse_list,
    ("sync", "copy_attempts"): int,
    ("covers", "workers"): int,
    ("covers", "queue_size"): int,
    ("covers", "country"): str,
    ("covers", "language"): str,
    ("covers", "timeout"): float,
    ("watch", "extensions"): _parse_list,
    ("watch", "debounce_ms"): int,
    ("watch", "sync_on_change"): _parse_bool,
    ("logging", "level"): str,
}


def _read_config_file(path: Path) -> dict:
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text) or {}
    if path.suffix == ".json":
        return json.loads(text) if text.strip() else {}
    raise ValueError(f"Unsupported config file format: {path.suffix}")


@dataclass
class TabshelfConfig:
    """Main configuration class for tabshelf."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    covers: CoversConfig = field(default_factory=CoversConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "TabshelfConfig":
        """
        Read a .yaml, .yml or .json configuration file.

        Sections absent from the file keep their defaults.

        Raises:
            FileNotFoundError: If path does not exist
            ValueError: If the extension is not recognized
        """
        return cls.from_dict(_read_config_file(Path(path)))

    @classmethod
    def from_dict(cls, data: dict) -> "TabshelfConfig":
        sections = {
            name: section_type(**data[name])
            for name, section_type in _SECTION_TYPES.items()
            if isinstance(data.get(name), dict)
        }
        return cls(**sections)

    def apply_env_overrides(self) -> "TabshelfConfig":
        """
        Overwrite fields from TABSHELF_<SECTION>_<KEY> environment variables,
        e.g. TABSHELF_STORAGE_DATA_DIR or TABSHELF_WATCH_DEBOUNCE_MS.

        Returns:
            self, for chaining
        """
        for (section, key), convert in _ENV_OVERRIDES.items():
            raw = os.environ.get(f"TABSHELF_{section}_{key}".upper())
            if raw is None:
                continue
            setattr(getattr(self, section), key, convert(raw))
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def save(self, path: Path | str) -> None:
        """
        Write the configuration as YAML or JSON, chosen by extension.

        Raises:
            ValueError: If the extension is not recognized
        """
        path = Path(path)
        if path.suffix in (".yaml", ".yml"):
            text = self.to_yaml()
        elif path.suffix == ".json":
            text = json.dumps(self.to_dict(), indent=2)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def load_config(
    config_path: Optional[Path | str] = None, apply_env: bool = True
) -> TabshelfConfig:
    """
    Build the effective configuration.

    Args:
        config_path: Optional YAML/JSON file; defaults only when None
        apply_env: Apply TABSHELF_* environment overrides on top

    Returns:
        TabshelfConfig instance
    """
    config = TabshelfConfig.from_file(config_path) if config_path else TabshelfConfig()
    return config.apply_env_overrides() if apply_env else config


def configure_logging(config: LoggingConfig) -> None:
    """Apply the logging section to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
    )
