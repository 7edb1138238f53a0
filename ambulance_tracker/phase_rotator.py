import asyncio
from typing import Optional

from loguru import logger

from ambulance_tracker.models import PollingConfig, RequestKind


class PhaseRotator:
    """Cycles the cosmetic progress phase on its own timer.

    The rotation is independent of the server status: it loops through the
    first ``rotation_length`` phases until stopped, and only ``finish()`` moves
    it to the final phase.
    """

    def __init__(self, kind: RequestKind, config: Optional[PollingConfig] = None):
        self.kind = RequestKind(kind)
        self.config = config or PollingConfig.for_kind(self.kind)
        self.logger = logger
        self.phase = 1
        self.progress = 0.0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self.phase = 1
        self.progress = 0.0
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def finish(self) -> None:
        self.stop()
        self.phase = self.config.phase_count
        self.progress = 100.0

    def advance(self) -> int:
        """Moves to the next phase of the loop, wrapping back to phase 1"""
        step = round(100.0 / self.config.rotation_length, 2)
        if self.phase >= self.config.rotation_length:
            self.phase = 1
            self.progress = 0.0
        else:
            self.phase += 1
            self.progress = min(round(self.progress + step, 2), 100.0)
        return self.phase

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.phase_interval)
            self.advance()
            self.logger.trace(f"{self.kind.value} phase -> {self.phase}")
