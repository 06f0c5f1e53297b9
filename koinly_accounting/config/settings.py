"""
Run settings resolved from the environment (and a local .env file).

Required:
    HTTP_RPC, CHAIN_ID, SENDER_ADDRESS, START_TIMESTAMP, END_TIMESTAMP

Optional:
    OUTPUT               csv | monthly-csv | google-drive (default csv)
    OUTPUT_PATH          CSV file, or directory for monthly-csv
    ETHERSCAN_API_KEY    resolve timestamps via Etherscan (else RPC bisection)
    BLOCK_WINDOW         blocks per eth_getLogs call (default 2000)
    RPC_MAX_RETRIES      attempts per RPC call (default 3)
    RPC_BACKOFF_SECONDS  first retry delay, doubled each attempt (default 1.0)
    CONTEXT_WORKERS      threads fetching block/receipt context (default 1)
    ON_OUTPUT_ERROR      abort | skip (default abort)
    LOG_LEVEL            default INFO

google-drive output also needs:
    GOOGLE_DRIVE_CREDENTIALS_PATH, GOOGLE_DRIVE_FOLDER_ID
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from dotenv import load_dotenv

from ..errors import ConfigurationError
from .registry import to_checksum

OUTPUT_CHOICES = ("csv", "monthly-csv", "google-drive")
ON_OUTPUT_ERROR_CHOICES = ("abort", "skip")
DEFAULT_OUTPUT_PATHS = {
    "csv": "koinly.csv",
    "monthly-csv": "out",
}


@dataclass(frozen=True)
class GoogleDriveConfig:
    client_id: str
    client_secret: str
    folder_id: str
    token: str
    refresh_token: str


def read_google_drive_config(credentials_path: str, folder_id: str) -> GoogleDriveConfig:
    """Read the OAuth client secrets + tokens JSON written by the consent flow.

    Expected layout:
        {"access_token": {"access_token": ..., "refresh_token": ...},
         "client_secrets": {"client_id": ..., "client_secret": ..., ...}}
    """
    try:
        with open(credentials_path, "r", encoding="utf-8") as f:
            creds = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Failed to read Google Drive credentials file {credentials_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError("Google Drive credentials JSON file is not well-formatted") from e

    try:
        token = creds["access_token"]
        secrets = creds["client_secrets"]
        return GoogleDriveConfig(
            client_id=secrets["client_id"],
            client_secret=secrets["client_secret"],
            folder_id=folder_id,
            token=token["access_token"],
            refresh_token=token["refresh_token"],
        )
    except (KeyError, TypeError) as e:
        raise ConfigurationError(f"Google Drive credentials JSON file is missing {e}") from e


@dataclass(frozen=True)
class Settings:
    http_rpc: str
    chain_id: int
    sender: str
    start_timestamp: int
    end_timestamp: int
    output: str = "csv"
    output_path: Optional[str] = None
    etherscan_api_key: Optional[str] = None
    block_window: int = 2000
    rpc_max_retries: int = 3
    rpc_backoff_seconds: float = 1.0
    context_workers: int = 1
    on_output_error: str = "abort"
    log_level: str = "INFO"
    google_drive: Optional[GoogleDriveConfig] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from `env` (defaults to os.environ after loading .env)."""
        if env is None:
            load_dotenv()
            env = os.environ

        def get_env(var: str) -> str:
            value = env.get(var)
            if value is None or value.strip() == "":
                raise ConfigurationError(f'Required environment variable "{var}" not set', code="missing_env")
            return value.strip()

        def parse(var: str, fn: Callable[[str], Any], default: Any = None, required: bool = True) -> Any:
            raw = get_env(var) if required else (env.get(var) or "").strip()
            if raw == "":
                return default
            try:
                return fn(raw)
            except (TypeError, ValueError, ConfigurationError) as e:
                raise ConfigurationError(f'Failed to parse "{var}"', code="bad_env") from e

        output = parse("OUTPUT", str.lower, default="csv", required=False)
        if output not in OUTPUT_CHOICES:
            raise ConfigurationError(f'Failed to parse "OUTPUT": expected one of {OUTPUT_CHOICES}, got {output!r}')
        on_output_error = parse("ON_OUTPUT_ERROR", str.lower, default="abort", required=False)
        if on_output_error not in ON_OUTPUT_ERROR_CHOICES:
            raise ConfigurationError(
                f'Failed to parse "ON_OUTPUT_ERROR": expected one of {ON_OUTPUT_ERROR_CHOICES}, got {on_output_error!r}'
            )

        google_drive = None
        if output == "google-drive":
            google_drive = read_google_drive_config(
                get_env("GOOGLE_DRIVE_CREDENTIALS_PATH"),
                get_env("GOOGLE_DRIVE_FOLDER_ID"),
            )

        settings = cls(
            http_rpc=get_env("HTTP_RPC"),
            chain_id=parse("CHAIN_ID", int),
            sender=parse("SENDER_ADDRESS", to_checksum),
            start_timestamp=parse("START_TIMESTAMP", int),
            end_timestamp=parse("END_TIMESTAMP", int),
            output=output,
            output_path=parse("OUTPUT_PATH", str, default=DEFAULT_OUTPUT_PATHS.get(output), required=False),
            etherscan_api_key=parse("ETHERSCAN_API_KEY", str, required=False),
            block_window=parse("BLOCK_WINDOW", int, default=2000, required=False),
            rpc_max_retries=parse("RPC_MAX_RETRIES", int, default=3, required=False),
            rpc_backoff_seconds=parse("RPC_BACKOFF_SECONDS", float, default=1.0, required=False),
            context_workers=parse("CONTEXT_WORKERS", int, default=1, required=False),
            on_output_error=on_output_error,
            log_level=parse("LOG_LEVEL", str.upper, default="INFO", required=False),
            google_drive=google_drive,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.start_timestamp > self.end_timestamp:
            raise ConfigurationError(
                f"START_TIMESTAMP {self.start_timestamp} > END_TIMESTAMP {self.end_timestamp}"
            )
        if self.block_window < 1:
            raise ConfigurationError(f"BLOCK_WINDOW must be >= 1, got {self.block_window}")
        if self.rpc_max_retries < 1:
            raise ConfigurationError(f"RPC_MAX_RETRIES must be >= 1, got {self.rpc_max_retries}")
        if self.context_workers < 1:
            raise ConfigurationError(f"CONTEXT_WORKERS must be >= 1, got {self.context_workers}")
