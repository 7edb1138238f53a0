import asyncio
import random
from collections import defaultdict
from typing import Optional, Union

from aiohttp import web
from loguru import logger

Scripted = Union[str, dict]


class DispatchServer:
    """In-process stand-in for the dispatch API's booking status and cancel endpoints"""

    def __init__(
        self,
        token: str = "abc",
        error_rate: float = 0.0,
        response_delay: float = 0.0,
    ):
        self.token = token
        self.error_rate = error_rate
        self.response_delay = response_delay
        self.statuses: dict[str, list[Scripted]] = {}
        self.pending_failures: dict[str, int] = defaultdict(int)
        self.cancel_error: Optional[str] = None
        self.status_calls: dict[str, int] = defaultdict(int)
        self.cancel_calls: dict[str, int] = defaultdict(int)
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self.app.router.add_get("/api/booking/status/{id}", self.handle_status)
        self.app.router.add_post("/api/booking/cancel/{id}", self.handle_cancel)
        self.logger = logger

    def script(self, request_id: str, *statuses: Scripted) -> None:
        """Queues the responses for a request; the last one repeats"""
        self.statuses[request_id] = list(statuses)

    def fail_next(self, request_id: str, count: int) -> None:
        self.pending_failures[request_id] += count

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {self.token}"

    async def handle_status(self, request: web.Request) -> web.Response:
        request_id = request.match_info["id"]
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)

        self.status_calls[request_id] += 1
        if self.response_delay:
            await asyncio.sleep(self.response_delay)

        if self.pending_failures[request_id] > 0:
            self.pending_failures[request_id] -= 1
            self.logger.info(f"Returning scripted failure for {request_id}")
            return web.json_response({"error": "Status service unavailable"}, status=500)

        if random.random() < self.error_rate:
            self.logger.info("Returning error status")
            return web.json_response({"error": "Internal server error"}, status=503)

        queued = self.statuses.get(request_id)
        if not queued:
            return web.json_response({"error": "Booking not found"}, status=404)

        entry = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(entry, dict):
            return web.json_response(entry)

        self.logger.info(f"Returning {entry} status for {request_id}")
        return web.json_response({"status": entry})

    async def handle_cancel(self, request: web.Request) -> web.Response:
        request_id = request.match_info["id"]
        if not self._authorized(request):
            return web.json_response({"error": "Unauthorized"}, status=401)

        self.cancel_calls[request_id] += 1
        if self.response_delay:
            await asyncio.sleep(self.response_delay)
        if self.cancel_error is not None:
            return web.json_response({"error": self.cancel_error}, status=400)
        if request_id not in self.statuses:
            return web.json_response({"error": "Booking not found"}, status=404)

        self.statuses[request_id] = ["Cancelled"]
        self.logger.info(f"Cancelled {request_id}")
        return web.json_response({"message": "Booking cancelled"})

    async def start(self, port: int = 3001):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
