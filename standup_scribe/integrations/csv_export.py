from __future__ import annotations

import asyncio
import csv
import io
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.report import REPORT_HEADERS, StandupReport, entry_row
from ..models.delivery import Destination
from ..utils.logging import get_logger
from .base import Publisher

logger = get_logger(__name__)

CSV_HEADERS = REPORT_HEADERS + ["SubmittedAt"]


def _rows(report: StandupReport, with_date: bool = False) -> List[List[str]]:
    rows = []
    for entry in report.entries:
        row = entry_row(entry) + [entry.submitted_at.isoformat() if entry.submitted_at else ""]
        if with_date:
            row.insert(0, report.title_date)
        rows.append(row)
    return rows


def render_csv(headers: List[str], rows: Iterable[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class CsvPublisher(Publisher):
    """Writes ``<exports_dir>/<workspace>/<YYYY-MM-DD>.csv``; re-running overwrites it."""

    destination = Destination.CSV.value

    def __init__(self, exports_dir: str) -> None:
        self.exports_dir = Path(exports_dir)

    def path_for(self, report: StandupReport) -> Path:
        return self.exports_dir / report.workspace_id / f"{report.title_date}.csv"

    async def publish(self, report: StandupReport) -> Optional[str]:
        path = self.path_for(report)
        content = render_csv(CSV_HEADERS, _rows(report))
        await asyncio.to_thread(_write, path, content)
        logger.info(f"CSV generated: {path}")
        return str(path)


async def export_range(
    reports: List[StandupReport],
    exports_dir: str,
    workspace_id: str,
    start: date,
    end: date,
) -> str:
    """Write one CSV covering several runs, newest first, and return its path."""
    rows: List[List[str]] = []
    for report in sorted(reports, key=lambda r: r.run_date, reverse=True):
        rows.extend(_rows(report, with_date=True))

    path = Path(exports_dir) / workspace_id / f"export_{start.isoformat()}_to_{end.isoformat()}.csv"
    await asyncio.to_thread(_write, path, render_csv(["Date"] + CSV_HEADERS, rows))
    return str(path)
