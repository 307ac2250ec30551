# backend/audit_sheet.py
"""
Audit logger: appends one (input, output, timestamp) row per completed
generation to a Google Sheet.

Configuration (Settings / env vars):
  GOOGLE_SHEET_ID=...                 destination spreadsheet
  GOOGLE_SERVICE_ACCOUNT=...          inline service-account JSON, or
  GOOGLE_SERVICE_ACCOUNT_FILE=...     path to the service-account key file
  AUDIT_SHEET_RANGE=Sheet1!A:C
  AUDIT_TIMEOUT_SECONDS=30
  MOCK_SHEETS=true                    keep rows in memory instead (dev/tests)

Appends are not idempotent: a retried append may duplicate a row.
"""

import datetime
import json
from typing import Any, Dict, List

import google_auth_httplib2
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from backend.config import Settings
from backend.errors import AuditError

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_credentials(settings: Settings) -> service_account.Credentials:
    raw_json = settings.google_service_account
    if raw_json:
        # Env-injected JSON is sometimes double-encoded
        parsed = json.loads(raw_json)
        info = json.loads(parsed) if isinstance(parsed, str) else parsed
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    return service_account.Credentials.from_service_account_file(
        settings.google_service_account_file, scopes=SCOPES
    )


class AuditLogger:
    def __init__(self, settings: Settings):
        self._settings = settings
        self.mock = settings.mock_sheets
        self.sheet_id = settings.google_sheet_id
        self.sheet_range = settings.audit_sheet_range
        self.timeout = settings.audit_timeout_seconds
        self.mock_rows: List[List[str]] = []
        self._credentials = None
        self._service = None

    def _get_credentials(self):
        if self._credentials is None:
            self._credentials = load_credentials(self._settings)
        return self._credentials

    def _get_service(self):
        if self._service is None:
            self._service = build(
                "sheets", "v4", credentials=self._get_credentials(), cache_discovery=False
            )
        return self._service

    def _authorized_http(self):
        # httplib2.Http is not thread-safe; one per append
        return google_auth_httplib2.AuthorizedHttp(
            self._get_credentials(), http=httplib2.Http(timeout=self.timeout)
        )

    def append(self, input_text: str, artifact: str) -> Dict[str, Any]:
        logged_at = datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")
        row = [input_text, artifact, logged_at]

        if self.mock:
            self.mock_rows.append(row)
            return {"updatedRows": 1, "updatedRange": "mock", "loggedAt": logged_at}

        if not self.sheet_id:
            raise AuditError(detail="GOOGLE_SHEET_ID is not configured")

        try:
            resp = self._get_service().spreadsheets().values().append(
                spreadsheetId=self.sheet_id,
                range=self.sheet_range,
                valueInputOption="RAW",
                body={"values": [row]},
            ).execute(http=self._authorized_http())
        except HttpError as e:
            raise AuditError(detail=f"{e.resp.status}: {e.reason}") from e
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError, ValueError) as e:
            raise AuditError(detail=str(e)) from e

        updates = (resp or {}).get("updates", {})
        return {
            "updatedRows": updates.get("updatedRows", 0),
            "updatedRange": updates.get("updatedRange"),
            "loggedAt": logged_at,
        }
