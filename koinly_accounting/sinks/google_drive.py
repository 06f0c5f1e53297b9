"""
Google Drive sink: one Google Sheets spreadsheet per month (named YYYY-MM)
inside a designated Drive folder.

- Drive v3 files.list finds an existing month spreadsheet in the folder
- Drive v3 files.create makes a new spreadsheet there, then the header row
  is appended; if that append fails the new file is deleted again
- Sheets v4 values.append adds one row per record

Requests are retried with exponential backoff; the last failure is raised as
OutputError so the caller can decide to skip or abort.
"""
import logging
import socket
import time
from typing import Any, Callable, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config.settings import GoogleDriveConfig
from ..errors import OutputError
from .base import MonthBucketedSink

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
SPREADSHEET_MIME = "application/vnd.google-apps.spreadsheet"


def build_services(cfg: GoogleDriveConfig):
    """Return (drive, sheets) API clients authorized with the stored OAuth tokens."""
    creds = Credentials(
        token=cfg.token,
        refresh_token=cfg.refresh_token,
        token_uri=TOKEN_URI,
        client_id=cfg.client_id,
        client_secret=cfg.client_secret,
        scopes=SCOPES,
    )
    drive = build("drive", "v3", credentials=creds, cache_discovery=False)
    sheets = build("sheets", "v4", credentials=creds, cache_discovery=False)
    return drive, sheets


def quote(value: str) -> str:
    """Escape a literal for a Drive v3 files.list query string."""
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveSink(MonthBucketedSink):
    def __init__(
        self,
        drive,
        sheets,
        folder_id: str,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__()
        self.drive = drive
        self.sheets = sheets
        self.folder_id = folder_id
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_config(cls, cfg: GoogleDriveConfig, **kwargs) -> "GoogleDriveSink":
        drive, sheets = build_services(cfg)
        return cls(drive, sheets, cfg.folder_id, **kwargs)

    def _execute(self, label: str, request_fn: Callable[[], Any]) -> Any:
        for attempt in range(self.max_retries):
            try:
                return request_fn().execute()
            except (HttpError, socket.timeout, ConnectionError) as e:
                if attempt == self.max_retries - 1:
                    raise OutputError(f"{label} failed after {self.max_retries} attempts: {e}", code="google") from e
                sleep_for = self.backoff_seconds * (2 ** attempt)
                logger.warning("%s failed (attempt %d), retrying in %ss: %s", label, attempt + 1, sleep_for, e)
                if sleep_for > 0:
                    self._sleep(sleep_for)

    def find(self, month: str) -> Optional[str]:
        query = (
            f"name = '{quote(month)}' and '{quote(self.folder_id)}' in parents "
            f"and mimeType = '{SPREADSHEET_MIME}' and trashed = false"
        )
        resp = self._execute(
            f"list {month}",
            lambda: self.drive.files().list(
                q=query,
                fields="files(id, name)",
                spaces="drive",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ),
        )
        files = (resp or {}).get("files", [])
        if len(files) > 1:
            logger.warning("Found %d spreadsheets named %s, using %s", len(files), month, files[0]["id"])
        return files[0]["id"] if files else None

    def create(self, month: str, header: List[str]) -> str:
        body = {"name": month, "mimeType": SPREADSHEET_MIME, "parents": [self.folder_id]}
        created = self._execute(
            f"create {month}",
            lambda: self.drive.files().create(body=body, fields="id", supportsAllDrives=True),
        )
        spreadsheet_id = created["id"]
        try:
            self.append(spreadsheet_id, header)
        except OutputError:
            # never leave a headerless sheet behind for find()
            self.delete(spreadsheet_id)
            raise
        return spreadsheet_id

    def delete(self, spreadsheet_id: str) -> None:
        try:
            self._execute(
                f"delete {spreadsheet_id}",
                lambda: self.drive.files().delete(fileId=spreadsheet_id, supportsAllDrives=True),
            )
        except OutputError as e:
            logger.error("Could not remove headerless spreadsheet %s: %s", spreadsheet_id, e)

    def append(self, destination: str, row: List[str]) -> None:
        self._execute(
            f"append to {destination}",
            lambda: self.sheets.spreadsheets().values().append(
                spreadsheetId=destination,
                range="A1",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [row]},
            ),
        )
