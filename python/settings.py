import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from deploy_archive.archive_writers import ArchiveWriterFactory
from deploy_archive.compression import validate_level
from deploy_archive.errors import ConfigurationError
from deploy_archive.models import (
    DirectoryTreeSource,
    SingleFileSource,
    SourceSpec,
    SymlinkPolicy,
)
from deploy_archive.reporter import UNIT_FACTORS

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

DEFAULT_SETTINGS_FILE = "deploy_settings.json"

# Layout of a built Node.js app deployed to Azure App Service
DEFAULT_SOURCES: List[Dict[str, str]] = [
    {"type": "directory", "source_root": "dist/", "archive_prefix": "dist"},
    {"type": "directory", "source_root": "node_modules/", "archive_prefix": "node_modules"},
    {"type": "file", "source_path": "package.json", "archive_path": "package.json"},
    {
        "type": "file",
        "source_path": "package-lock.json",
        "archive_path": "package-lock.json",
    },
]


def _load_env_file(env_path: str) -> None:
    """
    Simple .env file parser that doesn't require external dependencies.
    Loads key=value pairs from .env file into os.environ.
    """
    if not os.path.isfile(env_path):
        return

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()

                # Skip empty lines and comments
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)  # Split on first = only
                    key = key.strip()
                    value = value.strip()

                    # Remove quotes if present
                    if (value.startswith('"') and value.endswith('"')) or (
                        value.startswith("'") and value.endswith("'")
                    ):
                        value = value[1:-1]

                    # .env file takes precedence over system environment variables
                    if key:
                        os.environ[key] = value

        logger.info(".env file loaded successfully (built-in parser)")

    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to load .env file: %s", e)


_env_file_paths = [".env", "../.env"]
for env_path in _env_file_paths:
    if os.path.isfile(env_path):
        _load_env_file(env_path)
        break


def parse_source(raw: Any, index: int = 0) -> SourceSpec:
    """Build a source spec from one entry of the ``sources`` list."""
    if not isinstance(raw, dict):
        raise ConfigurationError(f"sources[{index}] must be an object, got {raw!r}")

    source_type = raw.get("type")
    if source_type == "directory":
        source_root = raw.get("source_root")
        if not source_root:
            raise ConfigurationError(f"sources[{index}] is missing 'source_root'")
        return DirectoryTreeSource(
            source_root=source_root,
            archive_prefix=raw.get("archive_prefix", ""),
        )
    if source_type == "file":
        source_path = raw.get("source_path")
        if not source_path:
            raise ConfigurationError(f"sources[{index}] is missing 'source_path'")
        return SingleFileSource(
            source_path=source_path,
            archive_path=raw.get("archive_path") or os.path.basename(source_path),
        )

    raise ConfigurationError(
        f"sources[{index}] has unknown type {source_type!r} (expected 'directory' or 'file')"
    )


class Settings:
    """
    Loads the archive build configuration from a JSON file (by default
    `deploy_settings.json`), falling back to the built-in deployment layout
    when the default file is absent. Environment variables override the file.
    """

    def __init__(self, settings_file: Optional[str] = None) -> None:
        """
        :param settings_file: Path to a JSON settings file. When None, the
            default file is used if it exists. An explicit path that is missing
            or invalid exits the program.
        """
        self.settings_file = settings_file
        self.raw: Dict[str, Any] = {}

        if settings_file is None:
            if os.path.isfile(DEFAULT_SETTINGS_FILE):
                self.settings_file = DEFAULT_SETTINGS_FILE
                self.raw = self._require_json(DEFAULT_SETTINGS_FILE)
            else:
                logger.info(
                    "No %s found, using built-in deployment layout.",
                    DEFAULT_SETTINGS_FILE,
                )
        else:
            if not os.path.isfile(settings_file):
                logger.critical(
                    "Settings file not found at '%s'. Exiting...", settings_file
                )
                sys.exit(1)
            self.raw = self._require_json(settings_file)

        self.output_path: str = os.environ.get(
            "DEPLOY_ARCHIVE_OUTPUT", self.raw.get("output_path", "azure-deploy.zip")
        )
        self.archive_format: str = os.environ.get(
            "DEPLOY_ARCHIVE_FORMAT", self.raw.get("format", "zip")
        )
        if self.archive_format not in ArchiveWriterFactory.get_supported_formats():
            raise ConfigurationError(f"Unsupported archive format: {self.archive_format}")

        self.compression_level: int = self._parse_level(
            os.environ.get("DEPLOY_ARCHIVE_LEVEL", self.raw.get("compression_level"))
        )

        try:
            self.symlink_policy = SymlinkPolicy(self.raw.get("symlinks", "follow"))
        except ValueError:
            raise ConfigurationError(
                f"Invalid symlink policy: {self.raw.get('symlinks')!r}"
            ) from None

        self.include_empty_dirs: bool = bool(self.raw.get("include_empty_dirs", False))
        self.verify_after_build: bool = bool(self.raw.get("verify_after_build", True))

        self.size_unit: str = str(self.raw.get("size_unit", "MB")).upper()
        if self.size_unit not in UNIT_FACTORS:
            raise ConfigurationError(f"Unknown size unit: {self.size_unit}")

        raw_sources = self.raw.get("sources", DEFAULT_SOURCES)
        if not isinstance(raw_sources, list):
            raise ConfigurationError("'sources' must be a list")
        self.sources: List[SourceSpec] = [
            parse_source(item, i) for i, item in enumerate(raw_sources)
        ]

        logger.info(
            "Settings loaded from '%s'.", self.settings_file or "built-in defaults"
        )

    def _parse_level(self, value: Any) -> int:
        if value is None:
            return ArchiveWriterFactory.DEFAULT_LEVEL[self.archive_format]
        try:
            level = int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid compression level: {value!r}") from None

        _, max_level = ArchiveWriterFactory.get_level_range(self.archive_format)
        try:
            return validate_level(level, max_level)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def _require_json(self, path: str) -> Dict[str, Any]:
        data = self._load_json(path)
        if not isinstance(data, dict):
            logger.critical(
                "%s appears to be empty or invalid. Exiting...", path
            )
            sys.exit(1)
        return data

    def _load_json(self, path: str) -> Any:
        """
        Loads JSON from the given file path.

        :param path: The path to the JSON file.
        :return: The parsed JSON if valid, otherwise None.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.error("Error loading JSON file '%s': %s", path, e)
            return None
