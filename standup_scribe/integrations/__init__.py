"""
Integrations for Standup Scribe.

Outbound adapters used by the standup core:
- Slack (direct messages, report channel, interactivity verification)
- Google Sheets (one tab per run)
- Notion (one page per run)
- CSV files
"""
from typing import Dict, Optional

from ..config import Settings
from .base import BaseIntegration, IntegrationError, IntegrationConfig, MessagingClient, Publisher
from .chat_publisher import ChatReportPublisher
from .csv_export import CsvPublisher
from .notion_client import NotionClient, NotionConfig, NotionPublisher
from .sheets_client import SheetsClient, SheetsConfig, SheetsPublisher
from .slack_client import SlackClient, SlackConfig, SlackError


def build_publishers(settings: Settings, messaging: Optional[MessagingClient]) -> Dict[str, Publisher]:
    """Publisher registry keyed by destination; destinations without credentials are left out."""
    publishers: Dict[str, Publisher] = {}

    if messaging is not None:
        chat = ChatReportPublisher(messaging)
        publishers[chat.destination] = chat

    csv_publisher = CsvPublisher(settings.exports_dir)
    publishers[csv_publisher.destination] = csv_publisher

    if settings.google_service_account_json:
        sheets = SheetsPublisher(SheetsClient(SheetsConfig(service_account_json=settings.google_service_account_json)))
        publishers[sheets.destination] = sheets

    if settings.notion_token:
        notion = NotionPublisher(NotionClient(NotionConfig(token=settings.notion_token)))
        publishers[notion.destination] = notion

    return publishers


__all__ = [
    "BaseIntegration",
    "IntegrationError",
    "IntegrationConfig",
    "MessagingClient",
    "Publisher",
    "ChatReportPublisher",
    "CsvPublisher",
    "NotionClient",
    "NotionConfig",
    "NotionPublisher",
    "SheetsClient",
    "SheetsConfig",
    "SheetsPublisher",
    "SlackClient",
    "SlackConfig",
    "SlackError",
    "build_publishers",
]
