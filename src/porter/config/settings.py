"""
Configuration management for the Nitro Porter exporter.

Usage:
    from porter.config.settings import Config
    config = Config()
    connector = create_connector(config.source.driver, config.source.database)

Environment Variables (PORTER_ prefix):
    PORTER_SOURCE_DRIVER: Source driver (duckdb | sqlite)
    PORTER_SOURCE_DATABASE: Path to the source database (or :memory:)
    PORTER_SOURCE_NAME: Source platform name written to the export header
    PORTER_TABLE_PREFIX: Replaces ':_' in export queries
    PORTER_SOURCE_PREFIX: Table prefix used in queries that should be rewritten
    PORTER_OUTPUT_DIR: Directory for export files
    PORTER_COMPRESSION: Gzip the export file (true | false)
    PORTER_DESTINATION: file | database
    PORTER_DEST_PREFIX / PORTER_DEST_DB: Naming for create table statements
    PORTER_TABLES: Comma-separated list of tables to restrict the export to
    PORTER_TEST_MODE / PORTER_TEST_LIMIT: Limit every query for a quick trial run
    PORTER_DUMP_SQL / PORTER_CAPTURE_ONLY: Append the query log to the export
    PORTER_CREATE_TABLES: Allow create table statements
    PORTER_STRUCTURES_FILE: YAML file extending the destination structures
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from ..domain.enums import Destination, SourceDriver

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


def parse_restricted_tables(value: Optional[str]) -> list[str]:
    """
    Turn a comma-separated table list into lowercased, trimmed names.

    An empty or missing value means "export everything" and yields [].
    """
    if not value:
        return []
    return [name.strip().lower() for name in value.split(",") if name.strip()]


def _env_bool(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SourceConfig:
    """Source database configuration."""
    driver: SourceDriver = SourceDriver.DUCKDB
    database: str = MEMORY_DATABASE
    name: Optional[str] = None
    table_prefix: str = ""
    source_prefix: str = ""

    def __post_init__(self):
        """Validate source configuration."""
        # Accept plain strings from the environment
        try:
            self.driver = SourceDriver(str(getattr(self.driver, "value", self.driver)).lower())
        except ValueError:
            valid = ", ".join(d.value for d in SourceDriver)
            raise ValueError(f"Source driver must be one of: {valid}")

        if not self.database:
            raise ValueError("Source database cannot be empty")


@dataclass
class OutputConfig:
    """Export file configuration."""
    directory: str = "."
    use_compression: bool = True
    destination: Destination = Destination.FILE
    dest_prefix: str = "GDN_z"
    dest_db: Optional[str] = None

    def __post_init__(self):
        """Validate output configuration."""
        try:
            self.destination = Destination(str(getattr(self.destination, "value", self.destination)).lower())
        except ValueError:
            raise ValueError("Destination must be 'file' or 'database'")

    @property
    def compress(self) -> bool:
        """Compression only applies to file exports."""
        return self.use_compression and self.destination is Destination.FILE


@dataclass
class ExportOptions:
    """Export behaviour flags."""
    restricted_tables: list[str] = field(default_factory=list)
    test_mode: bool = False
    test_limit: int = 10
    chunk_size: int = 100000
    dump_sql: bool = False
    capture_only: bool = False
    script_create_table: bool = True
    structures_file: Optional[str] = None

    def __post_init__(self):
        """Validate export options."""
        if self.test_limit < 1:
            raise ValueError("Test limit must be positive")
        if self.chunk_size < 1:
            raise ValueError("Chunk size must be positive")
        self.restricted_tables = [name.strip().lower() for name in self.restricted_tables if name.strip()]


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class Config:
    """
    Centralized configuration management for the exporter.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env.{ENVIRONMENT} (where ENVIRONMENT=development|production|staging)
    3. .env file in project root
    4. System environment variables

    Example:
        # Development environment
        config = Config(environment="development")

        # Explicit env file, CLI overrides on top
        config = Config(env_file=Path("/secure/vbulletin.env"))
        config.override("source", database="forum.duckdb")
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None,
                 validate_on_init: bool = True):
        """
        Initialize configuration.

        Args:
            environment: Target environment (development|staging|production)
            env_file: Explicit path to environment file
            validate_on_init: Whether to validate all settings on initialization
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()

        self._load_environment_variables(env_file)

        self._load_source_config()
        self._load_output_config()
        self._load_export_options()

        if validate_on_init:
            self.validate()

    def _find_project_root(self) -> Path:
        """Find project root directory containing pyproject.toml, .git, or .env file."""
        current = Path(__file__).resolve()

        for parent in current.parents:
            if any((parent / marker).exists() for marker in ['pyproject.toml', '.git']):
                return parent

        if (Path.cwd() / '.env').exists():
            return Path.cwd()

        return Path.cwd()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if env_file.exists():
                load_dotenv(env_file)
                loaded_files.append(str(env_file))
                logger.info(f"Loaded configuration from {env_file}")
            else:
                raise ConfigurationError(f"Specified env file not found: {env_file}")

        else:
            env_specific_file = self.project_root / f".env.{self.environment}"
            if env_specific_file.exists():
                load_dotenv(env_specific_file)
                loaded_files.append(str(env_specific_file))
                logger.info(f"Loaded environment-specific config: {env_specific_file}")

            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))
                logger.info(f"Loaded generic config: {generic_env_file}")

        if not loaded_files:
            logger.debug("No .env files found, using system environment variables only")

        self._loaded_env_files = loaded_files

        logger.debug(f"Project root: {self.project_root}")
        logger.debug(f"Environment: {self.environment}")

    def _load_source_config(self) -> None:
        """Load source database configuration."""
        try:
            self.source = SourceConfig(
                driver=os.getenv("PORTER_SOURCE_DRIVER", SourceDriver.DUCKDB.value),
                database=os.getenv("PORTER_SOURCE_DATABASE", MEMORY_DATABASE),
                name=os.getenv("PORTER_SOURCE_NAME") or None,
                table_prefix=os.getenv("PORTER_TABLE_PREFIX", ""),
                source_prefix=os.getenv("PORTER_SOURCE_PREFIX", ""),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid source configuration: {e}")

    def _load_output_config(self) -> None:
        """Load export file configuration."""
        try:
            self.output = OutputConfig(
                directory=os.getenv("PORTER_OUTPUT_DIR", "."),
                use_compression=_env_bool("PORTER_COMPRESSION", "true"),
                destination=os.getenv("PORTER_DESTINATION", Destination.FILE.value),
                dest_prefix=os.getenv("PORTER_DEST_PREFIX", "GDN_z"),
                dest_db=os.getenv("PORTER_DEST_DB") or None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid output configuration: {e}")

    def _load_export_options(self) -> None:
        """Load export behaviour flags."""
        try:
            self.export = ExportOptions(
                restricted_tables=parse_restricted_tables(os.getenv("PORTER_TABLES")),
                test_mode=_env_bool("PORTER_TEST_MODE"),
                test_limit=int(os.getenv("PORTER_TEST_LIMIT", "10")),
                chunk_size=int(os.getenv("PORTER_CHUNK_SIZE", "100000")),
                dump_sql=_env_bool("PORTER_DUMP_SQL"),
                capture_only=_env_bool("PORTER_CAPTURE_ONLY"),
                script_create_table=_env_bool("PORTER_CREATE_TABLES", "true"),
                structures_file=os.getenv("PORTER_STRUCTURES_FILE") or None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid export options: {e}")

    def override(self, section: str, **values: Any) -> None:
        """
        Replace fields of one configuration section, ignoring None values.

        Used by the CLI so command-line options win over the environment.

        Raises:
            ConfigurationError: If the section is unknown or a value is invalid
        """
        if section not in ("source", "output", "export"):
            raise ConfigurationError(f"Unknown configuration section: {section}")

        changes = {key: value for key, value in values.items() if value is not None}
        if not changes:
            return

        try:
            setattr(self, section, replace(getattr(self, section), **changes))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid {section} configuration: {e}")

    def validate(self) -> None:
        """
        Comprehensive configuration validation.

        Raises:
            ConfigurationError: If any configuration is invalid
        """
        validation_errors = []

        if self.source.database != MEMORY_DATABASE and not Path(self.source.database).exists():
            validation_errors.append(f"Source database not found: {self.source.database}")

        if self.export.structures_file and not Path(self.export.structures_file).exists():
            validation_errors.append(f"Structures file not found: {self.export.structures_file}")

        if validation_errors:
            raise ConfigurationError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {error}" for error in validation_errors)
            )

        logger.debug("Configuration validation passed")

    def get_summary(self) -> dict[str, Any]:
        """
        Get configuration summary for the export log.

        Returns:
            Dictionary with the settings that shape an export
        """
        return {
            'environment': self.environment,
            'loaded_env_files': self._loaded_env_files,
            'source_driver': self.source.driver.value,
            'source_database': self.source.database,
            'table_prefix': self.source.table_prefix,
            'output_dir': self.output.directory,
            'destination': self.output.destination.value,
            'compression': self.output.compress,
            'restricted_tables': self.export.restricted_tables,
            'test_mode': self.export.test_mode,
        }

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"driver={self.source.driver.value}, "
            f"database={self.source.database})"
        )
