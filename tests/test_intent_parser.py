"""
Unit tests for natural-language intent parsing.

The language model is replaced by canned async runners.
"""

import json
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from intent_parser import filter_document, parse_intent, run_llm_cli, strip_code_fence
from workflow_errors import IntentParseError
from workflow_models import NavigateStep, WaitForElementStep


def reply_with(text):
    async def runner(prompt, timeout):
        runner.prompts.append(prompt)
        return text
    runner.prompts = []
    return runner


VALID_DOCUMENT = {
    "name": "Open example",
    "steps": [
        {"action": "navigate", "value": "https://example.com"},
        {"action": "waitForElement", "selector": "#main"},
    ],
}


class TestParseIntent(unittest.IsolatedAsyncioTestCase):

    async def test_valid_reply(self):
        runner = reply_with(json.dumps(VALID_DOCUMENT))

        workflow = await parse_intent("open example.com", runner=runner)

        self.assertEqual(workflow.name, "Open example")
        self.assertIsInstance(workflow.steps[0], NavigateStep)
        self.assertIsInstance(workflow.steps[1], WaitForElementStep)
        self.assertIn("User prompt: open example.com", runner.prompts[0])

    async def test_code_fence_and_extra_keys_removed(self):
        document = dict(VALID_DOCUMENT, version=2, explanation="because")
        reply = "```json\n" + json.dumps(document) + "\n```"

        with self.assertLogs("intent_parser", level="WARNING") as logs:
            workflow = await parse_intent("open example.com", runner=reply_with(reply))

        self.assertEqual(len(workflow.steps), 2)
        self.assertTrue(any("version" in line for line in logs.output))

    async def test_not_json(self):
        with self.assertRaises(IntentParseError) as cm:
            await parse_intent("x", runner=reply_with("Sure! Here is your workflow."))
        self.assertTrue(str(cm.exception).startswith("Failed to parse LLM response as JSON"))

    async def test_json_but_not_object(self):
        with self.assertRaises(IntentParseError) as cm:
            await parse_intent("x", runner=reply_with("[1, 2]"))
        self.assertIn("as a JSON object", str(cm.exception))

    async def test_schema_failure(self):
        reply = json.dumps({"steps": [{"action": "click"}]})
        with self.assertRaises(IntentParseError) as cm:
            await parse_intent("x", runner=reply_with(reply))

        message = str(cm.exception)
        self.assertTrue(message.startswith("LLM response failed schema validation after filtering"))
        self.assertIn("Error at path '/steps/0'", message)

    async def test_missing_steps_defaults_to_empty(self):
        workflow = await parse_intent("x", runner=reply_with('{"name": "nothing"}'))
        self.assertEqual(workflow.steps, [])

    async def test_runner_failure_wrapped(self):
        async def runner(prompt, timeout):
            raise RuntimeError("boom")

        with self.assertRaises(IntentParseError) as cm:
            await parse_intent("x", runner=runner)
        self.assertEqual(str(cm.exception), "Intent parsing failed: boom")

    async def test_runner_errors_not_double_wrapped(self):
        async def runner(prompt, timeout):
            raise IntentParseError("LLM request failed: timed out after 1s")

        with self.assertRaises(IntentParseError) as cm:
            await parse_intent("x", runner=runner)
        self.assertEqual(str(cm.exception), "LLM request failed: timed out after 1s")


class TestHelpers(unittest.TestCase):

    def test_strip_code_fence(self):
        self.assertEqual(strip_code_fence('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fence('```\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fence('  {"a": 1} '), '{"a": 1}')

    def test_filter_document(self):
        filtered = filter_document({"name": "n", "steps": [], "extra": True})
        self.assertEqual(filtered, {"name": "n", "steps": []})


class TestRunLlmCli(unittest.IsolatedAsyncioTestCase):
    """The CLI runner, with the subprocess mocked out."""

    def make_process(self, stdout, stderr=b"", returncode=0):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(stdout, stderr))
        proc.returncode = returncode
        return proc

    async def test_extracts_result_from_envelope(self):
        envelope = json.dumps({"type": "result", "result": '{"steps": []}'}).encode()
        proc = self.make_process(envelope)

        with patch("intent_parser.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            result = await run_llm_cli("hello", timeout=5)

        self.assertEqual(result, '{"steps": []}')
        args = spawn.call_args.args
        self.assertEqual(args[1:], ("-p", "hello", "--output-format", "json"))

    async def test_plain_output_passed_through(self):
        proc = self.make_process(b"not an envelope")

        with patch("intent_parser.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await run_llm_cli("hello", timeout=5)

        self.assertEqual(result, "not an envelope")

    async def test_failed_exit(self):
        proc = self.make_process(b"", stderr=b"not logged in", returncode=1)

        with patch("intent_parser.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with self.assertRaises(IntentParseError) as cm:
                await run_llm_cli("hello", timeout=5)

        self.assertIn("exited with code 1: not logged in", str(cm.exception))

    async def test_missing_binary(self):
        spawn = AsyncMock(side_effect=FileNotFoundError("no such file"))

        with patch("intent_parser.asyncio.create_subprocess_exec", spawn):
            with self.assertRaises(IntentParseError) as cm:
                await run_llm_cli("hello", timeout=5)

        self.assertTrue(str(cm.exception).startswith("LLM request failed: could not start"))


if __name__ == '__main__':
    unittest.main()
