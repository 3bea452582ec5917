"""
Settings for the cadastro batch job.

Settings are plain Pydantic models loaded, in increasing precedence, from
a YAML file, an optional .env file and environment variables:

```yaml
job:
  job_name: job01
  step_name: step01
  chunk_size: 200
  source_path: servers/data/cadastros.csv
  comment_prefixes: ["---"]
  names: [name, document, email, phone, age]
  table: pessoa
  columns: [name, document, email, phone, age]

metadata:            # job repository datasource (optional)
  host: localhost
  database: batch_metadata
  user: batch
  password: ...

sink:                # business datasource (required)
  host: localhost
  database: cadastros
  user: batch
  password: ...
```

Environment variables: METADATA_DB_{HOST,PORT,NAME,USER,PASSWORD},
SINK_DB_{HOST,PORT,NAME,USER,PASSWORD}, BATCH_CHUNK_SIZE, BATCH_SOURCE_PATH.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator

from cadastro_batch.core.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config/batch.yaml")
DEFAULT_COLUMNS = ["name", "document", "email", "phone", "age"]

# Maps environment variable suffixes to DataSourceSettings fields
_DATASOURCE_ENV_FIELDS = {
    "HOST": "host",
    "PORT": "port",
    "NAME": "database",
    "USER": "user",
    "PASSWORD": "password",
}


class DataSourceSettings(BaseModel):
    """
    Connection settings for one PostgreSQL datasource.

    Attributes:
        host: Database host
        port: Database port
        database: Database name
        user: Database user
        password: Database password (required)
        min_size: Minimum connection pool size
        max_size: Maximum connection pool size
        timeout: Connection timeout in seconds
    """

    host: str = "localhost"
    port: int = Field(5432, ge=1, le=65535)
    database: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    password: SecretStr
    min_size: int = Field(1, ge=1)
    max_size: int = Field(4, ge=1)
    timeout: float = Field(30.0, gt=0)

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("password must not be empty")
        return v

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DataSourceSettings":
        if self.min_size > self.max_size:
            raise ValueError("min_size must not exceed max_size")
        return self


class JobSettings(BaseModel):
    """
    Job, reader and writer settings.

    Attributes:
        job_name: Job name; run ids are counted per job name
        step_name: Name of the single chunk step
        chunk_size: Records per chunk and per transaction
        source_path: Delimited source file
        comment_prefixes: Lines starting with any of these are skipped
        delimiter: Field delimiter of the source file
        encoding: Source file encoding
        strict: Fail when the source file is missing
        names: Source column names, in positional order
        table: Sink table
        columns: Sink columns, in the same order as names
    """

    job_name: str = Field("job01", min_length=1)
    step_name: str = Field("step01", min_length=1)
    chunk_size: int = Field(200, ge=1)
    source_path: Path = Path("servers/data/cadastros.csv")
    comment_prefixes: list[str] = Field(default_factory=lambda: ["---"])
    delimiter: str = Field(",", min_length=1, max_length=1)
    encoding: str = "utf-8"
    strict: bool = True
    names: list[str] = Field(default_factory=lambda: list(DEFAULT_COLUMNS), min_length=1)
    table: str = Field("pessoa", min_length=1)
    columns: list[str] = Field(default_factory=lambda: list(DEFAULT_COLUMNS), min_length=1)


class BatchSettings(BaseModel):
    """
    Complete configuration of the batch job.

    Attributes:
        job: Job, reader and writer settings
        sink: Business datasource the records are written to
        metadata: Job repository datasource; None keeps metadata in memory
    """

    job: JobSettings = Field(default_factory=JobSettings)
    sink: DataSourceSettings
    metadata: DataSourceSettings | None = None


def _datasource_from_env(prefix: str) -> dict[str, str]:
    values = {}
    for suffix, field_name in _DATASOURCE_ENV_FIELDS.items():
        value = os.getenv(f"{prefix}_{suffix}")
        if value is not None:
            values[field_name] = value
    return values


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    config_path: str | Path | None = None,
    env_file: str | Path | None = None,
) -> BatchSettings:
    """
    Load and validate settings.

    Args:
        config_path: YAML file; defaults to config/batch.yaml when it exists
        env_file: .env file loaded into the environment before reading it

    Returns:
        Validated BatchSettings

    Raises:
        ConfigurationError: If a file cannot be read or validation fails
    """
    if env_file is not None:
        env_path = Path(env_file)
        if not env_path.exists():
            raise ConfigurationError(f"Environment file not found: {env_file}")
        load_dotenv(env_path, override=False)

    raw: dict[str, Any] = {}
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if path.exists():
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    elif config_path is not None:
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    overrides: dict[str, Any] = {}
    job_overrides = {}
    if os.getenv("BATCH_CHUNK_SIZE"):
        job_overrides["chunk_size"] = os.getenv("BATCH_CHUNK_SIZE")
    if os.getenv("BATCH_SOURCE_PATH"):
        job_overrides["source_path"] = os.getenv("BATCH_SOURCE_PATH")
    if job_overrides:
        overrides["job"] = job_overrides

    for section, prefix in (("sink", "SINK_DB"), ("metadata", "METADATA_DB")):
        env_values = _datasource_from_env(prefix)
        if env_values:
            overrides[section] = env_values

    return build_settings(_merge(raw, overrides))


def build_settings(values: dict[str, Any]) -> BatchSettings:
    """
    Validate a settings mapping.

    Raises:
        ConfigurationError: Listing every invalid field
    """
    try:
        return BatchSettings.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid batch settings: {problems}") from e
