# pylint: disable=missing-docstring
import json

import pytest

from koinly_accounting.config.settings import Settings, read_google_drive_config
from koinly_accounting.errors import ConfigurationError

from conftest import SENDER

BASE_ENV = {
    "HTTP_RPC": "http://localhost:8545",
    "CHAIN_ID": "10",
    "SENDER_ADDRESS": SENDER,
    "START_TIMESTAMP": "1704067200",
    "END_TIMESTAMP": "1706745600",
}


def env(**overrides):
    values = dict(BASE_ENV)
    values.update(overrides)
    return {k: v for k, v in values.items() if v is not None}


def test_defaults():
    settings = Settings.from_env(env())
    assert settings.chain_id == 10
    assert settings.sender == SENDER
    assert settings.output == "csv"
    assert settings.output_path == "koinly.csv"
    assert settings.block_window == 2000
    assert settings.on_output_error == "abort"
    assert settings.etherscan_api_key is None
    assert settings.google_drive is None


def test_optional_overrides():
    settings = Settings.from_env(env(
        OUTPUT="monthly-csv",
        BLOCK_WINDOW="500",
        CONTEXT_WORKERS="4",
        ON_OUTPUT_ERROR="skip",
        ETHERSCAN_API_KEY="key",
    ))
    assert settings.output_path == "out"
    assert settings.block_window == 500
    assert settings.context_workers == 4
    assert settings.on_output_error == "skip"
    assert settings.etherscan_api_key == "key"


@pytest.mark.parametrize("var", sorted(BASE_ENV))
def test_missing_required_variable(var):
    with pytest.raises(ConfigurationError) as err:
        Settings.from_env(env(**{var: None}))
    assert err.value.message == f'Required environment variable "{var}" not set'


@pytest.mark.parametrize("var,value", [
    ("CHAIN_ID", "optimism"),
    ("START_TIMESTAMP", "yesterday"),
    ("SENDER_ADDRESS", "0x1234"),
    ("BLOCK_WINDOW", "big"),
])
def test_unparseable_variable(var, value):
    with pytest.raises(ConfigurationError) as err:
        Settings.from_env(env(**{var: value}))
    assert err.value.message == f'Failed to parse "{var}"'


def test_unknown_output():
    with pytest.raises(ConfigurationError):
        Settings.from_env(env(OUTPUT="xlsx"))


def test_reversed_window():
    with pytest.raises(ConfigurationError):
        Settings.from_env(env(START_TIMESTAMP="20", END_TIMESTAMP="10"))


def test_zero_block_window():
    with pytest.raises(ConfigurationError):
        Settings.from_env(env(BLOCK_WINDOW="0"))


def write_credentials(path, **overrides):
    creds = {
        "access_token": {"access_token": "ya29.token", "refresh_token": "1//refresh"},
        "client_secrets": {
            "client_id": "id.apps.googleusercontent.com",
            "client_secret": "secret",
            "redirect_uris": ["http://localhost"],
        },
    }
    creds.update(overrides)
    path.write_text(json.dumps(creds))
    return str(path)


def test_google_drive_settings(tmp_path):
    path = write_credentials(tmp_path / "creds.json")
    settings = Settings.from_env(env(
        OUTPUT="google-drive",
        GOOGLE_DRIVE_CREDENTIALS_PATH=path,
        GOOGLE_DRIVE_FOLDER_ID="folder-1",
    ))
    cfg = settings.google_drive
    assert cfg.folder_id == "folder-1"
    assert (cfg.token, cfg.refresh_token) == ("ya29.token", "1//refresh")
    assert cfg.client_id == "id.apps.googleusercontent.com"


def test_google_drive_needs_folder(tmp_path):
    path = write_credentials(tmp_path / "creds.json")
    with pytest.raises(ConfigurationError) as err:
        Settings.from_env(env(OUTPUT="google-drive", GOOGLE_DRIVE_CREDENTIALS_PATH=path))
    assert err.value.message == 'Required environment variable "GOOGLE_DRIVE_FOLDER_ID" not set'


def test_google_drive_credentials_missing_key(tmp_path):
    path = write_credentials(tmp_path / "creds.json", access_token={})
    with pytest.raises(ConfigurationError):
        read_google_drive_config(path, "folder-1")


def test_google_drive_credentials_bad_json(tmp_path):
    path = tmp_path / "creds.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError) as err:
        read_google_drive_config(str(path), "folder-1")
    assert "not well-formatted" in err.value.message


def test_google_drive_credentials_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        read_google_drive_config(str(tmp_path / "nope.json"), "folder-1")


def test_google_drive_credentials_without_redirect_uris(tmp_path):
    path = write_credentials(
        tmp_path / "creds.json",
        client_secrets={"client_id": "id.apps.googleusercontent.com", "client_secret": "secret"},
    )
    cfg = read_google_drive_config(path, "folder-1")
    assert (cfg.client_id, cfg.client_secret) == ("id.apps.googleusercontent.com", "secret")
