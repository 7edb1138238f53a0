import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from ambulance_tracker.cancel_action import CancelAction
from ambulance_tracker.exceptions import (
    ActionDisabledError,
    CancelFailedError,
    CancelValidationError,
)
from ambulance_tracker.models import (
    Notification,
    PollingConfig,
    RequestKind,
    TrackedRequest,
    TrackerState,
    TrackingOutcome,
)
from ambulance_tracker.phase_rotator import PhaseRotator
from ambulance_tracker.presenter import PhaseView, present
from ambulance_tracker.status_poller import StatusPoller

DASHBOARD = "/dashboard"
LOGIN = "/login"
BOOKING_SUCCESS = "/booking-success"
REPORT_SUCCESS = "/report-success?reportId={id}"

Navigate = Callable[[str], Awaitable[Any]]
Notify = Callable[[Notification], Awaitable[Any]]


class RequestTracker:
    """Tracks one booking or report the way its processing page does.

    Combines a status poller, a phase rotator and a cancel action, and turns
    every outcome into a notification plus a navigation target. ``close()``
    tears everything down and is safe to call at any point.
    """

    def __init__(
        self,
        base_url: str,
        request: TrackedRequest,
        token: Optional[str],
        navigate: Navigate,
        notify: Notify,
        config: Optional[PollingConfig] = None,
    ):
        self.request = request
        self.token = token
        self.config = config or PollingConfig.for_kind(request.kind)
        self.navigate = navigate
        self.notify = notify
        self.logger = logger

        self.poller = StatusPoller(
            base_url,
            request,
            token,
            config=self.config,
            on_outcome=self._handle_outcome,
        )
        self.rotator = PhaseRotator(request.kind, self.config)
        self.cancel_action = CancelAction(
            base_url, token, kind=request.kind, config=self.config
        )
        self._cancelled_by_user = False
        self._finished = False
        self._closed = False
        self._redirect_task: Optional[asyncio.Task] = None

    @property
    def label(self) -> str:
        return "Booking" if self.request.kind is RequestKind.booking else "Report"

    @property
    def state(self) -> TrackerState:
        if self._cancelled_by_user:
            return TrackerState.cancelled
        return self.poller.state

    @property
    def view(self) -> PhaseView:
        return present(self.request.kind, self.state, self.rotator.phase)

    async def start(self) -> bool:
        """Starts both timers; returns False if the page should not track at all"""
        if not self.token:
            if self.request.kind is RequestKind.report:
                await self._fail_fast(
                    "Authentication Error", "Please log in to continue.", LOGIN
                )
            else:
                await self._fail_fast(
                    "Error", "Missing authentication. Redirecting to dashboard.", DASHBOARD
                )
            return False
        if not self.request.id:
            if self.request.kind is RequestKind.report:
                await self._fail_fast("Invalid Report", "No report ID provided.", DASHBOARD)
            else:
                await self._fail_fast(
                    "Error", "Missing report ID. Redirecting to dashboard.", DASHBOARD
                )
            return False

        self._cancelled_by_user = False
        self._finished = False
        self.rotator.start()
        self.poller.start()
        return True

    async def cancel(self) -> bool:
        try:
            await self.cancel_action.cancel(self.request.id)
        except ActionDisabledError as e:
            self.logger.debug(str(e))
            return False
        except (CancelValidationError, CancelFailedError) as e:
            await self.notify(Notification(title="Error", description=e.message, destructive=True))
            return False

        already_left = self._finished and self.poller.state is not TrackerState.succeeded
        self._cancelled_by_user = True
        self._stop_timers()
        if self._closed or already_left:
            return True
        description = (
            "Your ambulance booking has been cancelled."
            if self.request.kind is RequestKind.booking
            else "Your report has been cancelled."
        )
        await self.notify(Notification(title=f"{self.label} Cancelled", description=description))
        await self.navigate(DASHBOARD)
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_timers()
        await self.poller.wait()

    async def __aenter__(self) -> "RequestTracker":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _stop_timers(self) -> None:
        self.poller.stop()
        self.rotator.stop()
        if self._redirect_task is not None and not self._redirect_task.done():
            self._redirect_task.cancel()
        self._redirect_task = None

    async def _fail_fast(self, title: str, description: str, destination: str) -> None:
        self.logger.error(f"Cannot track {self.request.kind.value}: {description}")
        await self.notify(Notification(title=title, description=description, destructive=True))
        await self.navigate(destination)

    async def _handle_outcome(self, outcome: TrackingOutcome) -> None:
        if self._closed or self._cancelled_by_user:
            return
        self._finished = True

        if outcome.state is TrackerState.succeeded:
            self.rotator.finish()
            if self.request.kind is RequestKind.booking:
                destination = BOOKING_SUCCESS
            else:
                destination = REPORT_SUCCESS.format(id=self.request.id)
            self._redirect_task = asyncio.get_running_loop().create_task(
                self._redirect_after(self.config.success_redirect_delay, destination)
            )
            return

        self.rotator.stop()
        if outcome.state is TrackerState.cancelled:
            await self.notify(
                Notification(
                    title=f"{self.label} Cancelled",
                    description=f"Your {self.request.kind.value} has been cancelled.",
                    destructive=True,
                )
            )
        else:
            await self.notify(
                Notification(
                    title="Error",
                    description=outcome.error
                    or f"Failed to check {self.request.kind.value} status. Please try again later.",
                    destructive=True,
                )
            )
        await self.navigate(DASHBOARD)

    async def _redirect_after(self, delay: float, destination: str) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await self.navigate(destination)
