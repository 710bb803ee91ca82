"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CHECK_INTERVAL = 4
DEFAULT_PAUSE_THRESHOLD = 45
DEFAULT_MAX_WAIT_TIME = 600
DEFAULT_LEDGER_CAPACITY = 100


class MonitorConfig(BaseModel):
    check_interval: float = Field(default=DEFAULT_CHECK_INTERVAL, gt=0)  # seconds
    pause_threshold: float = Field(default=DEFAULT_PAUSE_THRESHOLD, ge=0)  # seconds
    max_wait_time: float = Field(default=DEFAULT_MAX_WAIT_TIME, gt=0)  # seconds
    enable_task_status_check: bool = True
    status_check_every: int = Field(default=3, ge=1)  # ticks between oracle polls
    commit_tool: str = "update_entry_fields"  # "" disables commit verification
    nudge_message: str = "Continue"
    summarization_markers: list[str] = Field(
        default_factory=lambda: ["Summarized conversation history"]
    )


class StorageConfig(BaseModel):
    db_path: str = "./data/chat_secretary.db"
    archive_dir: str = "./data/transcripts"
    ledger_capacity: int = Field(default=DEFAULT_LEDGER_CAPACITY, ge=1)
    ledger_namespace: str = "chat_secretary"


class CollaboratorsConfig(BaseModel):
    transcript_path: str = "./data/chat-export.json"
    export_command: Optional[list[str]] = None  # refreshes transcript_path before each read
    oracle_command: Optional[list[str]] = None  # "{task_id}" placeholder, exit 0 = complete
    nudge_command: Optional[list[str]] = None  # "{message}" placeholder
    command_timeout: float = 30


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    collaborators: CollaboratorsConfig = Field(default_factory=CollaboratorsConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
