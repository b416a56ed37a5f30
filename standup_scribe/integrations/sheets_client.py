from __future__ import annotations

import asyncio
import json
from datetime import timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from ..core.exceptions import DeliveryError
from ..core.report import REPORT_HEADERS, StandupReport, entry_row
from ..models.delivery import Destination
from .base import BaseIntegration, IntegrationConfig, IntegrationCredentials, IntegrationError, Publisher

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


class SheetsConfig(IntegrationConfig):
    """Google Sheets integration configuration."""

    name: str = "sheets"
    service_account_json: Optional[str] = None


class SheetsClient(BaseIntegration[SheetsConfig]):
    """Google Sheets v4 REST client authenticated with a service account."""

    def __init__(
        self,
        config: SheetsConfig,
        credentials: Optional[IntegrationCredentials] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        super().__init__(config, credentials, transport)

    async def refresh_credentials(self) -> None:
        if not self.config.service_account_json:
            raise IntegrationError("Google Sheets not configured", self.config.name)

        info = json.loads(self.config.service_account_json)
        creds = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        await asyncio.to_thread(creds.refresh, GoogleAuthRequest())

        expires_at = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
        self.credentials = IntegrationCredentials(access_token=creds.token, expires_at=expires_at)
        self._logger.debug("Refreshed Google service account token")

    async def find_sheet_id(self, spreadsheet_id: str, title: str) -> Optional[int]:
        response = await self._make_request(
            "GET",
            f"{SHEETS_API}/{spreadsheet_id}",
            params={"fields": "sheets.properties"},
        )
        for sheet in response.json().get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("title") == title:
                return properties.get("sheetId")
        return None

    async def create_or_update_tab(
        self,
        spreadsheet_id: str,
        title: str,
        headers: List[str],
        rows: List[List[str]],
    ) -> int:
        """Clear-then-rewrite a tab (creating it first if needed); returns its sheet id."""
        sheet_id = await self.find_sheet_id(spreadsheet_id, title)

        if sheet_id is not None:
            await self._make_request(
                "POST",
                f"{SHEETS_API}/{spreadsheet_id}/values/{quote(self._range(title, 'A1:Z'))}:clear",
                json={},
            )
        else:
            response = await self._make_request(
                "POST",
                f"{SHEETS_API}/{spreadsheet_id}:batchUpdate",
                json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
            )
            replies: List[Dict[str, Any]] = response.json().get("replies", [])
            sheet_id = replies[0]["addSheet"]["properties"]["sheetId"] if replies else 0

        await self._make_request(
            "PUT",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(self._range(title, 'A1'))}",
            params={"valueInputOption": "RAW"},
            json={"values": [headers] + rows},
        )
        return sheet_id

    @staticmethod
    def _range(title: str, cells: str) -> str:
        return f"'{title}'!{cells}"

    @staticmethod
    def tab_url(spreadsheet_id: str, sheet_id: int) -> str:
        return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit#gid={sheet_id}"


class SheetsPublisher(Publisher):
    """One tab per run date, named ``YYYY-MM-DD``."""

    destination = Destination.SHEETS.value

    def __init__(self, client: SheetsClient) -> None:
        self.client = client

    async def publish(self, report: StandupReport) -> Optional[str]:
        if not report.google_spreadsheet_id:
            raise DeliveryError("No spreadsheet configured", self.destination)

        rows = [entry_row(entry) for entry in report.entries]
        sheet_id = await self.client.create_or_update_tab(
            report.google_spreadsheet_id,
            report.title_date,
            REPORT_HEADERS,
            rows,
        )
        return self.client.tab_url(report.google_spreadsheet_id, sheet_id)
