from .base import Base, BaseModel
from .workspace import WorkspaceConfig, RosterMember, Excusal
from .standup import StandupRun, StandupResponse, RunStatus, ResponseStatus, ACTIVE_RESPONSE_STATUSES
from .delivery import DeliveryJob, Destination, DeliveryStatus

__all__ = [
    "Base",
    "BaseModel",
    "WorkspaceConfig",
    "RosterMember",
    "Excusal",
    "StandupRun",
    "StandupResponse",
    "RunStatus",
    "ResponseStatus",
    "ACTIVE_RESPONSE_STATUSES",
    "DeliveryJob",
    "Destination",
    "DeliveryStatus",
]
