from sqlalchemy import Column, String, Integer, Text, Date, ForeignKey, JSON, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class WorkspaceConfig(BaseModel):
    __tablename__ = "workspace_configs"

    workspace_id = Column(String, unique=True, index=True, nullable=False)  # platform team/guild id
    report_channel_id = Column(String, nullable=True)
    team_mention = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Schedule, all times HH:MM in the workspace timezone
    timezone = Column(String, default="UTC", nullable=False)
    window_open_time = Column(String, default="09:00", nullable=False)
    window_close_time = Column(String, default="16:00", nullable=False)
    reminder_times = Column(JSON, default=list)  # at most 3

    retention_days = Column(Integer, default=1825, nullable=False)  # 5 years

    # Destination identifiers; presence enables the destination
    google_spreadsheet_id = Column(String, nullable=True)
    notion_parent_page_id = Column(String, nullable=True)


class RosterMember(BaseModel):
    __tablename__ = "roster_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_roster_workspace_user"),
    )

    workspace_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)  # external platform user id
    display_name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    excusals = relationship(
        "Excusal",
        back_populates="roster_member",
        cascade="all, delete-orphan",
    )
    responses = relationship("StandupResponse", back_populates="roster_member")

    def is_excused_on(self, day) -> bool:
        """True when any excusal covers the given calendar day (inclusive bounds)."""
        return any(excusal.covers(day) for excusal in self.excusals)


class Excusal(BaseModel):
    __tablename__ = "excusals"

    roster_member_id = Column(Integer, ForeignKey("roster_members.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # inclusive
    reason = Column(Text, nullable=False, default="")

    roster_member = relationship("RosterMember", back_populates="excusals")

    def covers(self, day) -> bool:
        return self.start_date <= day <= self.end_date
