from __future__ import annotations

from typing import List, Optional

from ..core.exceptions import DeliveryError
from ..core.report import StandupReport
from ..models.delivery import Destination
from ..utils.logging import get_logger
from .base import MessagingClient, Publisher

logger = get_logger(__name__)

LINK_LABELS = {
    Destination.SHEETS.value: "Google Sheets",
    Destination.NOTION.value: "Notion",
}


def render_summary(report: StandupReport) -> str:
    """Plain mrkdwn summary of a run for the report channel."""
    submitted = report.count("SUBMITTED")
    total = len(report.entries)

    lines: List[str] = []
    if report.team_mention:
        lines.append(report.team_mention)
    lines.append(f"*Daily Standup: {report.weekday} {report.title_date}*")
    lines.append(
        f"*{submitted}/{total}* submitted | {report.count('MISSING')} missing | "
        f"{report.count('EXCUSED')} excused | {report.count('DM_FAILED')} DM failed"
    )

    risks = report.collect("at_risk")
    if risks:
        lines.append("")
        lines.append(":warning: *Risks*")
        lines.extend(risks)

    decisions = report.collect("decisions")
    if decisions:
        lines.append("")
        lines.append(":clipboard: *Decisions Needed*")
        lines.extend(decisions)

    links = [
        f"<{url}|{LINK_LABELS[destination]}>"
        for destination, url in sorted(report.links.items())
        if destination in LINK_LABELS and url
    ]
    if links:
        lines.append("")
        lines.append(":link: " + " | ".join(links))

    return "\n".join(lines)


class ChatReportPublisher(Publisher):
    """Posts the run summary to the workspace's report channel."""

    destination = Destination.CHAT.value

    def __init__(self, messaging: MessagingClient) -> None:
        self.messaging = messaging

    async def publish(self, report: StandupReport) -> Optional[str]:
        if not report.report_channel_id:
            raise DeliveryError(
                f"No report channel configured for workspace {report.workspace_id}",
                self.destination,
            )

        url = await self.messaging.send_channel_message(report.report_channel_id, render_summary(report))

        csv_path = report.links.get(Destination.CSV.value)
        upload = getattr(self.messaging, "upload_file", None)
        if csv_path and upload is not None:
            # Best-effort: the summary is already posted
            try:
                await upload(report.report_channel_id, csv_path, title=f"{report.title_date}.csv")
            except Exception as e:
                logger.warning(f"CSV attachment for run {report.run_id} failed: {e}")

        return url
