import asyncio
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from loguru import logger

from ambulance_tracker.api import auth_headers, build_url, error_message
from ambulance_tracker.exceptions import (
    MissingCredentialsError,
    PollerStateError,
    StatusFetchError,
)
from ambulance_tracker.models import (
    PollingConfig,
    StatusResponse,
    TrackedRequest,
    TrackerState,
    TrackingOutcome,
)

StatusCallback = Callable[[StatusResponse], Awaitable[Any]]
OutcomeCallback = Callable[[TrackingOutcome], Awaitable[Any]]

# Rejected credentials will not recover by polling again
NON_RETRYABLE_STATUS_CODES = frozenset({401, 403})


class StatusPoller:
    """Polls the dispatch API for the status of one booking or report.

    The poller owns a single timer task. It stops on the first success or
    cancelled status, or once ``max_consecutive_failures`` polls in a row have
    failed, and reports the result exactly once through ``on_outcome``.
    """

    def __init__(
        self,
        base_url: str,
        request: TrackedRequest,
        token: Optional[str],
        config: Optional[PollingConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.request = request
        self.token = token
        self.config = config or PollingConfig.for_kind(request.kind)
        self.logger = logger
        self.on_status_change = on_status_change
        self.on_outcome = on_outcome

        self.state = TrackerState.idle
        self.error_count = 0
        self.last_status: Optional[str] = None
        self.outcome: Optional[TrackingOutcome] = None
        self._active = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        """Begins polling once per ``config.interval``"""
        if not self.request.id or not self.token:
            raise MissingCredentialsError(
                f"Missing {self.request.kind.value} ID or authentication."
            )
        if self._active:
            raise PollerStateError(
                f"Poller for {self.request.kind.value} {self.request.id} is already running"
            )

        self.state = TrackerState.polling
        self.error_count = 0
        self.last_status = None
        self.outcome = None
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        self.logger.info(
            f"Started polling {self.request.kind.value} {self.request.id} "
            f"every {self.config.interval:.2f}s"
        )

    def stop(self) -> None:
        """Cancels the timer and any in-flight query. Safe to call repeatedly."""
        if not self._active:
            return
        self._active = False
        if self.state is TrackerState.polling:
            self.state = TrackerState.idle
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self.logger.debug(f"Stopped polling {self.request.kind.value} {self.request.id}")

    async def wait(self) -> Optional[TrackingOutcome]:
        """Waits for the current run to end; returns None if it was stopped"""
        task = self._task
        if task is None or task is asyncio.current_task():
            return self.outcome
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def poll_until_complete(self) -> Optional[TrackingOutcome]:
        self.start()
        return await self.wait()

    async def _get_status_once(self, session: aiohttp.ClientSession) -> StatusResponse:
        """Fetches the status of the tracked request from the server"""
        start_time = asyncio.get_running_loop().time()
        url = build_url(self.base_url, self.config.status_path, self.request.id)

        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    message = await error_message(
                        response, f"Failed to fetch {self.request.kind.value} status"
                    )
                    raise StatusFetchError(
                        message,
                        status_code=response.status,
                        retryable=response.status not in NON_RETRYABLE_STATUS_CODES,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise StatusFetchError(f"Malformed status response: {e}") from e
        except aiohttp.ClientError as e:
            raise StatusFetchError(f"Error fetching {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise StatusFetchError(f"Timed out fetching {url}") from e

        if not isinstance(data, dict) or not isinstance(data.get("status"), str):
            raise StatusFetchError(f"Malformed status response: {data!r}")

        return StatusResponse(
            status=data["status"],
            raw_response=data,
            elapsed_time=asyncio.get_running_loop().time() - start_time,
        )

    async def _handle_status_change(self, status_response: StatusResponse) -> None:
        """Invoke the status change callback if the status has changed"""
        if self.last_status != status_response.status:
            self.logger.debug(
                f"{self.request.kind.value} {self.request.id} status changed to "
                f"{status_response.status}"
            )
            if self.on_status_change is not None:
                try:
                    await self.on_status_change(status_response)
                except Exception as e:
                    self.logger.exception(f"Status change handler failed: {e}")

    async def _finish(
        self,
        state: TrackerState,
        attempts: int,
        status: Optional[str] = None,
        error: Optional[str] = None,
    ) -> TrackingOutcome:
        self._active = False
        self.state = state
        self.outcome = TrackingOutcome(
            request=self.request,
            state=state,
            status=status,
            error=error,
            attempts=attempts,
        )
        self.logger.info(
            f"Tracking of {self.request.kind.value} {self.request.id} ended: {state.value}"
        )
        if self.on_outcome is not None:
            try:
                await self.on_outcome(self.outcome)
            except Exception as e:
                self.logger.exception(f"Outcome handler failed: {e}")
        return self.outcome

    async def _run(self) -> Optional[TrackingOutcome]:
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        attempt = 0

        try:
            async with aiohttp.ClientSession(
                headers=auth_headers(self.token), timeout=timeout
            ) as session:
                while self._active:
                    await asyncio.sleep(self.config.interval)
                    if not self._active:
                        break
                    attempt += 1

                    try:
                        status_response = await self._get_status_once(session)
                    except StatusFetchError as polling_error:
                        if not self._active:
                            break
                        self.error_count += 1
                        self.logger.error(
                            f"Error polling status ({self.error_count}/"
                            f"{self.config.max_consecutive_failures}): {polling_error}"
                        )
                        if (
                            not polling_error.retryable
                            or self.error_count >= self.config.max_consecutive_failures
                        ):
                            return await self._finish(
                                TrackerState.failed, attempt, error=polling_error.message
                            )
                        continue

                    if not self._active:
                        break

                    self.error_count = 0
                    await self._handle_status_change(status_response)
                    self.last_status = status_response.status
                    if not self._active:
                        break

                    if status_response.status in self.config.success_statuses:
                        return await self._finish(
                            TrackerState.succeeded, attempt, status=status_response.status
                        )
                    if status_response.status in self.config.cancelled_statuses:
                        return await self._finish(
                            TrackerState.cancelled, attempt, status=status_response.status
                        )
        finally:
            if self._task is asyncio.current_task():
                self._active = False
                if self.state is TrackerState.polling:
                    self.state = TrackerState.idle
        return None
