import asyncio
from typing import Optional

import aiohttp
from loguru import logger

from ambulance_tracker.api import auth_headers, build_url, error_message
from ambulance_tracker.exceptions import (
    ActionDisabledError,
    CancelFailedError,
    CancelValidationError,
)
from ambulance_tracker.models import PollingConfig, RequestKind


class CancelAction:
    """One-shot cancellation of a booking or report.

    The action disables itself while a request is in flight and stays
    disabled after a successful cancel. A failed cancel re-arms it.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        kind: RequestKind = RequestKind.booking,
        config: Optional[PollingConfig] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.kind = RequestKind(kind)
        self.config = config or PollingConfig.for_kind(self.kind)
        self.logger = logger
        self.enabled = True
        self.succeeded = False

    def rearm(self) -> None:
        self.enabled = True
        self.succeeded = False

    async def cancel(self, request_id: Optional[str]) -> None:
        """Sends the cancel request, raising CancelFailedError if the server refuses it"""
        if not request_id or not self.token:
            raise CancelValidationError(f"Missing {self.kind.value} ID or authentication.")
        if not self.enabled:
            raise ActionDisabledError(
                f"Cancellation of {self.kind.value} {request_id} is already "
                f"{'done' if self.succeeded else 'in progress'}"
            )

        self.enabled = False
        fallback = f"Failed to cancel {self.kind.value}."
        url = build_url(self.base_url, self.config.cancel_path, request_id)
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)

        try:
            async with aiohttp.ClientSession(
                headers=auth_headers(self.token), timeout=timeout
            ) as session:
                async with session.post(url) as response:
                    if response.status >= 400:
                        message = await error_message(response, fallback)
                        raise CancelFailedError(message, status_code=response.status)
        except CancelFailedError as e:
            self.enabled = True
            self.logger.error(f"Cancel of {self.kind.value} {request_id} rejected: {e}")
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.enabled = True
            self.logger.error(f"Error cancelling {self.kind.value} {request_id}: {e}")
            raise CancelFailedError(fallback) from e
        except asyncio.CancelledError:
            self.enabled = True
            raise

        self.succeeded = True
        self.logger.info(f"Cancelled {self.kind.value} {request_id}")
