"""
Intent Parser: turns a natural-language request into a validated Workflow
by asking a language model CLI for a workflow document.

The model's reply is reduced to the allowed top-level keys and then run
through the same schema validation as hand-written workflow files.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import workflow_config
from workflow_errors import IntentParseError
from workflow_loader import ROOT_PROPERTIES, format_errors, validate_document
from workflow_models import Workflow

logger = logging.getLogger(__name__)

LLMRunner = Callable[[str, int], Awaitable[str]]

SYSTEM_PROMPT = """
You convert natural-language browser automation requests into a workflow document.
Reply with a single JSON object and nothing else: no explanations, no comments, no
surrounding text.

The object may only contain these top-level keys:
- "name": short name for the workflow (string, optional)
- "description": one sentence describing it (string, optional)
- "steps": list of steps (required)

Each step is an object with an "action" and the fields for that action:
- {"action": "navigate", "value": "<url>"}
- {"action": "waitForElement", "selector": "<css>", "timeout": <ms, optional, default 15000>}
- {"action": "click", "selector": "<css>"}
- {"action": "type", "selector": "<css>", "value": "<text>"}
- {"action": "wait", "value": <milliseconds>}
- {"action": "log", "value": "<message>"}
- {"action": "jsHatch", "code": "<javascript function body>", "value": <optional>, "selector": "<optional css>"}
- {"action": "if", "condition": {"conditionType": "ifExists" | "ifValue", "selector": "<css>",
   "equalsValue": "<text, ifValue only>"}, "then": [steps], "else": [steps, optional]}
- {"action": "loop", "forEach": {"in": [items]} or {"times": <n>}, "do": [steps]}
  Inside a loop body, "{{item}}" in a selector or value is replaced by the current item.

Rules:
- After every "navigate", and before touching content that loads dynamically, add a
  "waitForElement" step for an element of the new content. Use "wait" only for fixed
  delays unrelated to page content.
- On google.com the search box is textarea[name='q'].

Example:
{
  "name": "Search example.com",
  "description": "Opens example.com, waits for the page and searches for a term.",
  "steps": [
    {"action": "navigate", "value": "https://example.com"},
    {"action": "waitForElement", "selector": "#main-content"},
    {"action": "type", "selector": "#search", "value": "example query"},
    {"action": "click", "selector": "#button"}
  ]
}
"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

# Errors with these prefixes are already descriptive and are not wrapped again
_OWN_PREFIXES = ("LLM request failed", "Failed to parse", "LLM response failed")


async def run_llm_cli(prompt: str, timeout: int = workflow_config.LLM_TIMEOUT) -> str:
    """
    Run the language model CLI in print mode and return its reply text.
    """
    cmd = [workflow_config.LLM_CLI_BIN, "-p", prompt, "--output-format", "json"]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise IntentParseError(f"LLM request failed: could not start {cmd[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.communicate()
        raise IntentParseError(f"LLM request failed: timed out after {timeout}s")

    output = stdout.decode("utf-8", errors="replace").strip()

    # The CLI wraps the reply in a JSON envelope with a "result" field
    try:
        envelope = json.loads(output)
        result_text = envelope.get("result", output) if isinstance(envelope, dict) else output
    except (json.JSONDecodeError, TypeError):
        result_text = output

    if proc.returncode != 0 and not result_text:
        err = stderr.decode("utf-8", errors="replace").strip()
        raise IntentParseError(f"LLM request failed: exited with code {proc.returncode}: {err}")

    return result_text


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def filter_document(raw: dict[str, Any]) -> dict[str, Any]:
    """Keep only the allowed top-level keys of a model-generated document."""
    filtered: dict[str, Any] = {}
    for key, value in raw.items():
        if key in ROOT_PROPERTIES:
            filtered[key] = value
        else:
            logger.warning(f"Removing unexpected top-level property from LLM response: {key}")

    if "steps" not in filtered:
        logger.warning("LLM response missing 'steps' list after filtering. Adding empty list.")
        filtered["steps"] = []
    return filtered


async def parse_intent(
    prompt: str,
    runner: Optional[LLMRunner] = None,
    timeout: int = workflow_config.LLM_TIMEOUT,
) -> Workflow:
    """
    Ask the language model for a workflow matching ``prompt``.

    Raises:
        IntentParseError: If the model can't be reached, its reply isn't JSON,
            or the document fails schema validation
    """
    runner = runner or run_llm_cli
    full_prompt = f"{SYSTEM_PROMPT}\n\nUser prompt: {prompt}"

    try:
        logger.info(f"Sending prompt to LLM: {prompt}")
        reply = await runner(full_prompt, timeout)
        logger.debug(f"Received response from LLM: {reply}")

        try:
            raw = json.loads(strip_code_fence(reply))
        except json.JSONDecodeError as e:
            raise IntentParseError(f"Failed to parse LLM response as JSON. Response: {reply}") from e
        if not isinstance(raw, dict):
            raise IntentParseError(f"Failed to parse LLM response as a JSON object. Response: {reply}")

        document = filter_document(raw)
        errors = validate_document(document)
        if errors:
            raise IntentParseError(
                f"LLM response failed schema validation after filtering: {format_errors(errors)}"
            )

        logger.info("Workflow document from LLM validated successfully")
        return Workflow.model_validate(document)

    except Exception as e:
        message = str(e)
        if message.startswith(_OWN_PREFIXES):
            raise
        raise IntentParseError(f"Intent parsing failed: {message}") from e
