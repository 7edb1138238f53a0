from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RequestKind(str, Enum):
    booking = "booking"
    report = "report"


class BookingStatus(str, Enum):
    pending = "Pending"
    accepted = "Accepted"
    assigned = "Assigned"
    cancelled = "Cancelled"


class TrackerState(str, Enum):
    idle = "idle"
    polling = "polling"
    succeeded = "succeeded"
    cancelled = "cancelled"
    failed = "failed"


class TrackedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: RequestKind = RequestKind.booking


class StatusResponse(BaseModel):
    status: str
    raw_response: dict
    elapsed_time: float


class TrackingOutcome(BaseModel):
    request: TrackedRequest
    state: TrackerState
    status: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


class Notification(BaseModel):
    title: str
    description: str
    destructive: bool = False


class PollingConfig(BaseModel):
    interval: float = 5.0
    max_consecutive_failures: int = 5
    request_timeout: float = 10.0
    success_statuses: frozenset[str] = frozenset({BookingStatus.assigned.value})
    cancelled_statuses: frozenset[str] = frozenset({BookingStatus.cancelled.value})
    phase_interval: float = 4.0
    phase_count: int = 3
    rotation_length: int = 2  # phases visited by the loop; the rest are shown on success
    success_redirect_delay: float = 2.0
    status_path: str = "/api/booking/status/{id}"
    cancel_path: str = "/api/booking/cancel/{id}"

    @classmethod
    def for_kind(cls, kind: RequestKind, **overrides) -> "PollingConfig":
        """Presets matching how bookings and incident reports are tracked"""
        if RequestKind(kind) is RequestKind.report:
            defaults = dict(
                interval=2.0,
                success_statuses=frozenset(
                    {BookingStatus.accepted.value, BookingStatus.assigned.value}
                ),
                phase_interval=2.0,
                rotation_length=3,
                success_redirect_delay=0.0,
            )
        else:
            defaults = {}
        defaults.update(overrides)
        return cls(**defaults)
