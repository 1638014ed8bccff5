"""
Workflow Executor: walks a workflow's step tree against a browser tab.

Steps run strictly in document order. Every leaf action or check is one
request over the remote action channel; 'if' and 'loop' recurse into their
nested step lists. The first failure anywhere in the tree stops the run and
is reported once, qualified by the failing step's path (e.g.
``steps[5]/else[1]``).
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Optional, Protocol, Sequence

import workflow_config
from navigation import NavigableTarget, NavigationWaiter
from remote_channel import (
    CheckCondition,
    CheckElement,
    ExecuteAction,
    ExecuteCode,
    MessageTarget,
    RemoteActionChannel,
)
from substitution import CURRENT_ITEM_KEY, extend_context, substitute, substitute_value
from workflow_errors import (
    CommunicationError,
    InvalidResponseError,
    NavigationError,
    StepTimeoutError,
    StepValidationError,
    WorkflowError,
)
from workflow_models import (
    ClickStep,
    IfStep,
    JsHatchStep,
    LogStep,
    LoopStep,
    NavigateStep,
    Step,
    TypeStep,
    WaitForElementStep,
    WaitStep,
    Workflow,
)

logger = logging.getLogger(__name__)


class Target(MessageTarget, NavigableTarget, Protocol):
    """A browser tab: receives action requests and can be navigated."""


class WorkflowExecutor:
    """Executes workflows one step at a time against a single target."""

    def __init__(
        self,
        channel: Optional[RemoteActionChannel] = None,
        navigation_timeout_ms: int = workflow_config.NAVIGATION_TIMEOUT_MS,
        settle_delay_ms: int = workflow_config.NAVIGATION_SETTLE_DELAY_MS,
        element_poll_interval_ms: int = workflow_config.ELEMENT_POLL_INTERVAL_MS,
        element_grace_delay_ms: int = workflow_config.ELEMENT_GRACE_DELAY_MS,
    ):
        self.channel = channel or RemoteActionChannel()
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_delay_ms = settle_delay_ms
        self.element_poll_interval_ms = element_poll_interval_ms
        self.element_grace_delay_ms = element_grace_delay_ms
        self.log_lines: list[str] = []

    def _log(self, msg: str):
        logger.info(msg)
        self.log_lines.append(msg)

    async def execute(self, target: Target, workflow: Workflow) -> None:
        """Run every step of ``workflow``. Raises WorkflowError on the first failure."""
        self.log_lines = []
        self._log(f"Starting workflow on target {target.target_id}: {workflow.name or '(unnamed)'}")
        try:
            await self.run_steps(target, workflow.steps, {}, "steps")
        except WorkflowError as e:
            logger.error(f"Workflow execution failed on target {target.target_id}: {e}")
            self.log_lines.append(f"ERROR: {e}")
            raise
        self._log(f"Workflow finished successfully on target {target.target_id}")

    async def run_steps(
        self,
        target: Target,
        steps: Sequence[Step],
        context: dict[str, Any],
        path: str,
    ) -> None:
        """Run a sequence of steps; ``path`` names the sequence, e.g. ``steps[2]/do``."""
        for index, step in enumerate(steps):
            step_path = f"{path}[{index}]"
            logger.debug(f"Processing {step_path}: {step}")
            try:
                await self._execute_step(target, step, context, step_path)
            except WorkflowError:
                # Already qualified by a nested step's path
                raise
            except Exception as e:
                logger.error(f"Error executing {step_path} ({step.action}): {e}")
                raise WorkflowError(step_path, str(e)) from e

    async def _execute_step(self, target: Target, step: Step, context: dict[str, Any], path: str):
        if isinstance(step, (LogStep, WaitStep, ClickStep, TypeStep)):
            await self._simple_action(target, step, context, path)
        elif isinstance(step, NavigateStep):
            await self._navigate(target, step, context, path)
        elif isinstance(step, WaitForElementStep):
            await self._wait_for_element(target, step, context, path)
        elif isinstance(step, JsHatchStep):
            await self._js_hatch(target, step, context, path)
        elif isinstance(step, IfStep):
            await self._if(target, step, context, path)
        elif isinstance(step, LoopStep):
            await self._loop(target, step, context, path)
        else:
            logger.warning(f"Encountered unknown action type '{step.action}' in {path}. Skipping.")
            self.log_lines.append(f"[{path}] Unknown action: {step.action}, skipping")

    # --- Leaf actions ---

    async def _simple_action(self, target: Target, step: Step, context: dict[str, Any], path: str):
        action = step.action
        selector = substitute(getattr(step, "selector", None), context)

        if isinstance(step, WaitStep):
            value = step.value
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise StepValidationError(
                    "Action 'wait' requires a numeric 'value' (milliseconds) >= 0."
                )
        else:
            value = substitute_value(step.value, context)

        if action in ("click", "type") and not selector:
            raise StepValidationError(f"Action '{action}' requires a 'selector'.")
        if action in ("type", "log") and value is None:
            raise StepValidationError(f"Action '{action}' requires a 'value'.")

        self._log(f"[{path}] {action}" + (f" {selector}" if selector else ""))
        await self.channel.send(target, ExecuteAction(action=action, selector=selector, value=value))

    async def _navigate(self, target: Target, step: NavigateStep, context: dict[str, Any], path: str):
        url = substitute_value(step.value, context)
        if not url:
            raise StepValidationError("Action 'navigate' requires a non-empty URL 'value'.")

        self._log(f"[{path}] navigate {url}")
        try:
            await target.update_location(url)
        except Exception as e:
            raise NavigationError(f"Navigation to {url} could not be started: {e}") from e

        waiter = NavigationWaiter(
            target,
            timeout_ms=self.navigation_timeout_ms,
            settle_delay_ms=self.settle_delay_ms,
        )
        try:
            await waiter.wait()
        except NavigationError as e:
            raise NavigationError(
                f"Navigation to {url} was initiated but waiting for page load failed: {e}"
            ) from e

    async def _wait_for_element(
        self, target: Target, step: WaitForElementStep, context: dict[str, Any], path: str
    ):
        selector = substitute(step.selector, context)
        if not selector:
            raise StepValidationError("Action 'waitForElement' requires a 'selector'.")
        timeout_ms = step.timeout if step.timeout is not None else workflow_config.DEFAULT_ELEMENT_TIMEOUT_MS

        self._log(f"[{path}] waitForElement {selector} (timeout {timeout_ms}ms)")
        loop = asyncio.get_running_loop()
        # The grace delay counts against the step timeout
        deadline = loop.time() + timeout_ms / 1000
        await asyncio.sleep(min(self.element_grace_delay_ms, timeout_ms) / 1000)

        attempts = 0
        while True:
            attempts += 1
            try:
                response = await self.channel.send(target, CheckElement(selector=selector))
            except CommunicationError as e:
                # Most likely the page is still navigating; keep polling
                logger.warning(f"[{path}] Element check {attempts} could not reach target: {e}")
            else:
                if response.exists is None:
                    raise InvalidResponseError(
                        f"Invalid response received for element check: missing 'exists' for '{selector}'"
                    )
                if response.exists:
                    logger.info(f"[{path}] Element '{selector}' found after {attempts} check(s)")
                    return

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise StepTimeoutError(
                    f"Timeout waiting for element '{selector}' after {timeout_ms}ms"
                )
            await asyncio.sleep(min(self.element_poll_interval_ms / 1000, remaining))

    async def _js_hatch(self, target: Target, step: JsHatchStep, context: dict[str, Any], path: str):
        if not step.code:
            raise StepValidationError("Action 'jsHatch' requires 'code'.")

        self._log(f"[{path}] jsHatch" + (f" ({step.description})" if step.description else ""))
        response = await self.channel.send(
            target,
            ExecuteCode(
                code=step.code,
                value=substitute_value(step.value, context),
                selector=substitute(step.selector, context),
            ),
        )
        logger.info(f"[{path}] jsHatch completed. Result: {response.data!r}")

    # --- Control flow ---

    async def _if(self, target: Target, step: IfStep, context: dict[str, Any], path: str):
        if step.condition is None or step.then is None:
            raise StepValidationError("Action 'if' requires 'condition' and 'then' blocks.")

        condition = step.condition
        selector = substitute(condition.selector, context)
        equals_value = substitute(condition.equals_value, context)
        if not condition.condition_type or not selector:
            raise StepValidationError("'if' condition requires 'conditionType' and 'selector'.")

        response = await self.channel.send(
            target,
            CheckCondition(
                condition_type=condition.condition_type,
                selector=selector,
                equals_value=equals_value,
            ),
        )
        data = response.data
        if not isinstance(data, dict) or not isinstance(data.get("conditionMet"), bool):
            raise InvalidResponseError(f"Invalid response received for condition check at {path}")

        condition_met = data["conditionMet"]
        self._log(f"[{path}] if {condition.condition_type} {selector} -> {condition_met}")
        if condition_met:
            await self.run_steps(target, step.then, context, f"{path}/then")
        elif step.else_ is not None:
            await self.run_steps(target, step.else_, context, f"{path}/else")

    async def _loop(self, target: Target, step: LoopStep, context: dict[str, Any], path: str):
        if step.for_each is None or step.do is None:
            raise StepValidationError("Action 'loop' requires 'forEach' and 'do' blocks.")

        source = step.for_each
        if source.items is not None and source.times is not None:
            raise StepValidationError("Action 'loop' requires exactly one of 'forEach.in' or 'forEach.times'.")

        items: Sequence[Any]
        if source.items is not None:
            items = source.items
            self._log(f"[{path}] loop over {len(items)} item(s)")
        elif source.times is not None and math.isfinite(source.times) and source.times >= 1:
            # Lazy, since times can be very large
            items = range(1, math.floor(source.times) + 1)
            self._log(f"[{path}] loop {len(items)} time(s)")
        else:
            raise StepValidationError(
                "Action 'loop' requires 'forEach.in' (list) or 'forEach.times' (number >= 1)."
            )

        for iteration, item in enumerate(items, start=1):
            logger.debug(f"[{path}] iteration {iteration}/{len(items)}")
            await self.run_steps(
                target,
                step.do,
                extend_context(context, **{CURRENT_ITEM_KEY: item}),
                f"{path}/do",
            )


async def execute_workflow(target: Target, workflow: Workflow, **executor_options: Any) -> None:
    """Run ``workflow`` against ``target``. Raises WorkflowError on the first failure."""
    await WorkflowExecutor(**executor_options).execute(target, workflow)
