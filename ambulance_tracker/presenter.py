from pydantic import BaseModel

from ambulance_tracker.models import RequestKind, TrackerState


class PhaseView(BaseModel):
    title: str
    description: str


BOOKING_VIEWS = {
    1: PhaseView(
        title="Searching for nearest ambulance",
        description="Locating available ambulances in your area...",
    ),
    2: PhaseView(
        title="Ambulances Found!",
        description="Waiting for driver to accept...",
    ),
    3: PhaseView(
        title="Ambulance Confirmed!",
        description="Your ambulance has been booked and is on the way",
    ),
}

REPORT_VIEWS = {
    1: PhaseView(
        title="Sending your report",
        description="Transmitting incident details to our servers...",
    ),
    2: PhaseView(
        title="Analyzing incident severity",
        description="Our AI is assessing the emergency priority level...",
    ),
    3: PhaseView(
        title="Searching for nearest ambulance",
        description="Locating available emergency responders in your area...",
    ),
}

CANCELLED_VIEWS = {
    RequestKind.booking: PhaseView(
        title="Booking Cancelled", description="Your booking has been cancelled."
    ),
    RequestKind.report: PhaseView(
        title="Report Cancelled", description="Your report has been cancelled."
    ),
}

FAILED_VIEW = PhaseView(
    title="Error",
    description="Failed to check status. Please try again later.",
)


def present(kind: RequestKind, state: TrackerState, phase: int) -> PhaseView:
    kind = RequestKind(kind)
    if state is TrackerState.cancelled:
        return CANCELLED_VIEWS[kind]
    if state is TrackerState.failed:
        return FAILED_VIEW

    views = BOOKING_VIEWS if kind is RequestKind.booking else REPORT_VIEWS
    if state is TrackerState.succeeded:
        return views[max(views)]
    return views.get(phase, views[1])
