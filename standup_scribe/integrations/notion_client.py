from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..core.exceptions import DeliveryError
from ..core.report import ReportEntry, StandupReport
from ..core.steps import NIL, QUESTION_STEPS, REPORT_LABELS, AnswerKind, STEP_CONFIG
from ..models.delivery import Destination
from ..services.date_parser import format_date_display
from .base import BaseIntegration, IntegrationConfig, IntegrationCredentials, IntegrationError, Publisher

NOTION_API = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
MAX_CHILDREN_PER_REQUEST = 100


class NotionConfig(IntegrationConfig):
    """Notion integration configuration."""

    name: str = "notion"
    token: Optional[str] = None


class NotionClient(BaseIntegration[NotionConfig]):
    """Minimal Notion REST client: child listing, page create/archive, block append."""

    def __init__(
        self,
        config: NotionConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        super().__init__(config, transport=transport)

    async def refresh_credentials(self) -> None:
        # Integration tokens are long-lived
        if not self.config.token:
            raise IntegrationError("Notion not configured", self.config.name)
        self.credentials = IntegrationCredentials(access_token=self.config.token)

    def _get_default_headers(self) -> Dict[str, str]:
        headers = super()._get_default_headers()
        headers["Notion-Version"] = NOTION_VERSION
        return headers

    async def list_child_pages(self, parent_page_id: str) -> List[Dict[str, Any]]:
        pages: List[Dict[str, Any]] = []
        cursor: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"page_size": MAX_CHILDREN_PER_REQUEST}
            if cursor:
                params["start_cursor"] = cursor

            response = await self._make_request(
                "GET",
                f"{NOTION_API}/blocks/{parent_page_id}/children",
                params=params,
            )
            data = response.json()
            pages.extend(block for block in data.get("results", []) if block.get("type") == "child_page")

            if not data.get("has_more"):
                return pages
            cursor = data.get("next_cursor")

    async def archive_page(self, page_id: str) -> None:
        await self._make_request("PATCH", f"{NOTION_API}/pages/{page_id}", json={"archived": True})

    async def create_page(self, parent_page_id: str, title: str) -> Dict[str, Any]:
        response = await self._make_request(
            "POST",
            f"{NOTION_API}/pages",
            json={
                "parent": {"page_id": parent_page_id},
                "properties": {"title": {"title": [{"text": {"content": title}}]}},
            },
        )
        return response.json()

    async def append_blocks(self, block_id: str, children: List[Dict[str, Any]]) -> None:
        for offset in range(0, len(children), MAX_CHILDREN_PER_REQUEST):
            await self._make_request(
                "PATCH",
                f"{NOTION_API}/blocks/{block_id}/children",
                json={"children": children[offset:offset + MAX_CHILDREN_PER_REQUEST]},
            )

    async def replace_page(self, parent_page_id: str, title: str, children: List[Dict[str, Any]]) -> str:
        """Archive any same-titled child page, create a fresh one and return its URL."""
        for page in await self.list_child_pages(parent_page_id):
            if page.get("child_page", {}).get("title") == title:
                self._logger.info("Archiving previous Notion page %s (%s)", page["id"], title)
                await self.archive_page(page["id"])

        page = await self.create_page(parent_page_id, title)
        await self.append_blocks(page["id"], children)
        return page.get("url") or f"https://www.notion.so/{page['id'].replace('-', '')}"


# Block builders

def _text(content: str, bold: bool = False) -> Dict[str, Any]:
    return {
        "type": "text",
        "text": {"content": content[:2000]},
        "annotations": {"bold": bold},
    }


def paragraph(content: str, bold: bool = False) -> Dict[str, Any]:
    return {"object": "block", "type": "paragraph", "paragraph": {"rich_text": [_text(content, bold)]}}


def todo(content: str, checked: bool = False) -> Dict[str, Any]:
    return {"object": "block", "type": "to_do", "to_do": {"rich_text": [_text(content)], "checked": checked}}


def toggle(content: str, children: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"object": "block", "type": "toggle", "toggle": {"rich_text": [_text(content)], "children": children}}


def member_blocks(entry: ReportEntry) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = []

    for step in QUESTION_STEPS:
        value = entry.answers.get(step)
        kind = STEP_CONFIG[step].kind

        if kind == AnswerKind.LIST:
            items = [item for item in value if item and item.strip()]
            if not items:
                continue
            blocks.append(paragraph(f"{REPORT_LABELS[step]}:", bold=True))
            blocks.extend(paragraph(NIL) if item == NIL else todo(item) for item in items)
        elif kind == AnswerKind.DATE:
            if not value.raw and not value.iso:
                continue
            blocks.append(paragraph(f"{REPORT_LABELS[step]}:", bold=True))
            blocks.append(paragraph(format_date_display(value)))
        elif value and value.strip():
            blocks.append(paragraph(f"{REPORT_LABELS[step]}:", bold=True))
            blocks.append(paragraph(value))

    if entry.status != "SUBMITTED":
        blocks.append(paragraph(f"Status: {entry.status}", bold=True))

    return blocks


class NotionPublisher(Publisher):
    """One page per run under the workspace's parent page, titled ``Weekday (YYYY-MM-DD)``."""

    destination = Destination.NOTION.value

    def __init__(self, client: NotionClient) -> None:
        self.client = client

    @staticmethod
    def page_title(report: StandupReport) -> str:
        return f"{report.weekday} ({report.title_date})"

    async def publish(self, report: StandupReport) -> Optional[str]:
        if not report.notion_parent_page_id:
            raise DeliveryError("No Notion parent page configured", self.destination)

        children = [toggle(f"@{entry.display_name}", member_blocks(entry)) for entry in report.entries]
        return await self.client.replace_page(report.notion_parent_page_id, self.page_title(report), children)
