import re
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConfigurationError, WorkspaceNotConfiguredError
from ..models.workspace import WorkspaceConfig
from ..utils.logging import get_logger
from ..utils.time import get_zone

logger = get_logger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MAX_REMINDERS = 3
DEFAULT_REMINDER_TIMES = ["10:00", "12:00", "14:00"]

# Fields an operator may set; None leaves the stored value alone
CONFIGURABLE_FIELDS = (
    "report_channel_id",
    "team_mention",
    "timezone",
    "window_open_time",
    "window_close_time",
    "reminder_times",
    "retention_days",
    "google_spreadsheet_id",
    "notion_parent_page_id",
    "is_active",
)


def validate_time(value: str, field: str) -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ConfigurationError(f"{field} must be in HH:MM format (24-hour), got {value!r}")
    return value.strip()


class WorkspaceService:
    """Service for workspace standup settings"""

    def __init__(self, db: AsyncSession, default_timezone: str = "UTC"):
        self.db = db
        self.default_timezone = default_timezone

    async def get_config(self, workspace_id: str) -> Optional[WorkspaceConfig]:
        stmt = select(WorkspaceConfig).where(WorkspaceConfig.workspace_id == workspace_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def require_config(self, workspace_id: str) -> WorkspaceConfig:
        config = await self.get_config(workspace_id)
        if config is None:
            raise WorkspaceNotConfiguredError(workspace_id)
        return config

    async def list_configs(self, active_only: bool = True) -> List[WorkspaceConfig]:
        stmt = select(WorkspaceConfig).order_by(WorkspaceConfig.workspace_id)
        if active_only:
            stmt = stmt.where(WorkspaceConfig.is_active.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def configure(self, workspace_id: str, **updates: Any) -> WorkspaceConfig:
        """Create or update a workspace's settings after validating the merged result"""

        unknown = set(updates) - set(CONFIGURABLE_FIELDS)
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        config = await self.get_config(workspace_id)
        values: Dict[str, Any] = self._current_values(config)
        for key, value in updates.items():
            if value is None:
                continue
            # An empty destination id switches that destination off
            if key in ("google_spreadsheet_id", "notion_parent_page_id", "team_mention") and value == "":
                value = None
            values[key] = value

        self._validate(values)

        if config is None:
            config = WorkspaceConfig(workspace_id=workspace_id)
            self.db.add(config)
            logger.info(f"Creating workspace config for {workspace_id}")
        else:
            logger.info(f"Updating workspace config for {workspace_id}")

        for key, value in values.items():
            setattr(config, key, value)

        await self.db.commit()
        await self.db.refresh(config)
        return config

    def _current_values(self, config: Optional[WorkspaceConfig]) -> Dict[str, Any]:
        if config is None:
            return {
                "report_channel_id": None,
                "team_mention": None,
                "timezone": self.default_timezone,
                "window_open_time": "09:00",
                "window_close_time": "16:00",
                "reminder_times": list(DEFAULT_REMINDER_TIMES),
                "retention_days": 1825,
                "google_spreadsheet_id": None,
                "notion_parent_page_id": None,
                "is_active": True,
            }
        return {key: getattr(config, key) for key in CONFIGURABLE_FIELDS}

    @staticmethod
    def _validate(values: Dict[str, Any]) -> None:
        try:
            get_zone(values["timezone"])
        except ValueError as e:
            raise ConfigurationError(f"Invalid timezone: {values['timezone']}") from e

        values["window_open_time"] = validate_time(values["window_open_time"], "window_open_time")
        values["window_close_time"] = validate_time(values["window_close_time"], "window_close_time")
        if values["window_open_time"] >= values["window_close_time"]:
            raise ConfigurationError("window_open_time must be earlier than window_close_time")

        reminders = values.get("reminder_times") or []
        if isinstance(reminders, str):
            reminders = [part for part in (item.strip() for item in reminders.split(",")) if part]
        if len(reminders) > MAX_REMINDERS:
            raise ConfigurationError(f"Maximum {MAX_REMINDERS} reminder times allowed")
        values["reminder_times"] = sorted(validate_time(item, "reminder_times") for item in reminders)

        retention = values.get("retention_days")
        if not isinstance(retention, int) or retention < 1:
            raise ConfigurationError("retention_days must be a positive number of days")
