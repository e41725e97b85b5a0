from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


DEFAULT_DATABASE_PREFIX = "sample_"
DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "codeql-mcp", "codeql_mcp.yaml")


@dataclass
class CodeqlConfig:
    # External tool
    codeql_path: str = "codeql"
    database_prefix: str = DEFAULT_DATABASE_PREFIX

    # Security
    allowed_roots: List[str] = field(default_factory=list)

    # Workflow behavior
    serialize_builds: bool = True
    notify_on_failure: bool = True

    # Progress (cosmetic)
    stdout_increment: float = 1.0
    stderr_increment: float = 2.0

    # Child process output
    stream_limit_bytes: int = 1_048_576
    stderr_tail_lines: int = 50

    log_level: str = "INFO"


class AllowedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    codeql_path: str = "codeql"
    database_prefix: str = DEFAULT_DATABASE_PREFIX

    allowed_roots: List[str] = []

    serialize_builds: bool = True
    notify_on_failure: bool = True

    stdout_increment: float = 1.0
    stderr_increment: float = 2.0

    stream_limit_bytes: int = 1_048_576
    stderr_tail_lines: int = 50

    log_level: str = "INFO"

    @field_validator("codeql_path")
    @classmethod
    def validate_codeql_path(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("codeql_path cannot be empty")
        return value.strip()

    @field_validator("database_prefix")
    @classmethod
    def validate_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("database_prefix cannot be empty")
        if os.sep in value or (os.altsep and os.altsep in value) or value in {".", ".."}:
            raise ValueError("database_prefix must be a plain directory name prefix")
        return value

    @field_validator("stdout_increment", "stderr_increment")
    @classmethod
    def validate_increment(cls, value: float) -> float:
        if value < 0:
            raise ValueError("progress increments must be non-negative")
        return value

    @field_validator("stream_limit_bytes", "stderr_tail_lines")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if int(value) <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = str(value).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log_level: {value}")
        return level


def load_config(path: Optional[str] = None) -> CodeqlConfig:
    """Load config from YAML.

    Default path: $CODEQL_MCP_CONFIG_PATH, else ~/.config/codeql-mcp/codeql_mcp.yaml

    Example:

        codeql_path: /opt/codeql/codeql
        allowed_roots:
          - /Users/you/src
    """

    if path is None:
        path = os.environ.get("CODEQL_MCP_CONFIG_PATH") or os.path.expanduser(DEFAULT_CONFIG_PATH)

    cfg = CodeqlConfig()
    if not os.path.isfile(path):
        logging.debug("No config file at %s; using defaults.", path)
        return cfg
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("Invalid configuration: expected a mapping at the top level")

    try:
        validated = AllowedConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    cfg = CodeqlConfig(**validated.model_dump())

    # Normalize allowed roots (resolve symlinks for security)
    cfg.allowed_roots = [os.path.realpath(p) for p in (cfg.allowed_roots or [])]
    if cfg.codeql_path != os.path.basename(cfg.codeql_path):
        cfg.codeql_path = os.path.abspath(os.path.expanduser(cfg.codeql_path))

    return cfg
