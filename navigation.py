"""
Navigation wait helper.

After a 'navigate' step changes the tab's location, the executor must not
send the next request until the new page has finished loading. The waiter
races three outcomes: the tab reports load complete, the tab is closed, or
the timeout elapses. The first one wins; listeners and the timer are always
released afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Protocol, Union

import workflow_config
from workflow_errors import NavigationError

logger = logging.getLogger(__name__)

LOAD_COMPLETE_EVENT = "complete"
TARGET_DESTROYED_EVENT = "destroyed"

STATUS_COMPLETE = "complete"


class NavigableTarget(Protocol):
    """A tab whose location can be changed and whose load state can be observed."""

    target_id: Union[int, str]

    async def update_location(self, url: str) -> None:
        ...

    async def get_status(self) -> str:
        ...

    def add_listener(self, event: str, callback: Callable[[], Any]) -> None:
        ...

    def remove_listener(self, event: str, callback: Callable[[], Any]) -> None:
        ...


class NavigationState(Enum):
    WAITING = "waiting"
    COMPLETE = "complete"
    FAILED = "failed"


class NavigationWaiter:
    """Waits once for a target to finish loading. Create a new waiter per navigation."""

    def __init__(
        self,
        target: NavigableTarget,
        timeout_ms: int = workflow_config.NAVIGATION_TIMEOUT_MS,
        settle_delay_ms: int = workflow_config.NAVIGATION_SETTLE_DELAY_MS,
    ):
        self.target = target
        self.timeout_ms = timeout_ms
        self.settle_delay_ms = settle_delay_ms
        self.state = NavigationState.WAITING
        self._outcome: asyncio.Future | None = None
        self._timer: asyncio.TimerHandle | None = None

    async def wait(self) -> None:
        """Block until the page has loaded; raise NavigationError otherwise."""
        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        self.target.add_listener(LOAD_COMPLETE_EVENT, self._on_complete)
        self.target.add_listener(TARGET_DESTROYED_EVENT, self._on_destroyed)
        self._timer = loop.call_later(self.timeout_ms / 1000, self._on_timeout)

        try:
            status = await self.target.get_status()
            if status == STATUS_COMPLETE:
                logger.debug(f"Target {self.target.target_id} already complete")
                self._resolve(None)
            await self._outcome
        except BaseException:
            self.state = NavigationState.FAILED
            raise
        finally:
            self._cleanup()

        await asyncio.sleep(self.settle_delay_ms / 1000)
        self.state = NavigationState.COMPLETE
        logger.info(f"Target {self.target.target_id} finished loading")

    def _on_complete(self, *_args: Any) -> None:
        self._resolve(None)

    def _on_destroyed(self, *_args: Any) -> None:
        self._resolve(NavigationError("Target closed before load completed"))

    def _on_timeout(self) -> None:
        self._resolve(NavigationError(f"Navigation timeout after {self.timeout_ms}ms"))

    def _resolve(self, error: NavigationError | None) -> None:
        if self._outcome is None or self._outcome.done():
            return
        if error is None:
            self._outcome.set_result(None)
        else:
            self._outcome.set_exception(error)

    def _cleanup(self) -> None:
        self.target.remove_listener(LOAD_COMPLETE_EVENT, self._on_complete)
        self.target.remove_listener(TARGET_DESTROYED_EVENT, self._on_destroyed)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


async def wait_for_navigation(target: NavigableTarget, **options: Any) -> None:
    await NavigationWaiter(target, **options).wait()
