#!/usr/bin/env python3
"""
Workflow Runner CLI

Runs a workflow file, or a workflow generated from a natural-language
prompt, in a Playwright-controlled browser tab.

Usage:
    python run_workflow.py workflows/search.yaml [--start-url <url>] [--visible]
    python run_workflow.py --prompt "search google for playwright" [--save out.yaml]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import workflow_config
from intent_parser import parse_intent
from playwright_target import open_tab
from workflow_errors import WorkflowRunnerError
from workflow_executor import WorkflowExecutor
from workflow_loader import dump_workflow, lint_workflow, load_workflow

logger = logging.getLogger(__name__)


async def run(args) -> int:
    if args.prompt:
        workflow = await parse_intent(args.prompt)
        logger.info(f"Generated workflow: {workflow.name or '(unnamed)'} ({len(workflow.steps)} steps)")
        if args.save:
            Path(args.save).write_text(dump_workflow(workflow), encoding='utf-8')
            logger.info(f"Workflow saved to {args.save}")
    else:
        workflow = load_workflow(args.workflow)

    for warning in lint_workflow(workflow):
        logger.warning(warning)

    if args.dry_run:
        print(dump_workflow(workflow))
        return 0

    executor = WorkflowExecutor()
    async with open_tab(
        headless=args.headless,
        cookies_file=args.cookies_file,
        start_url=args.start_url,
    ) as tab:
        await executor.execute(tab, workflow)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Run a browser workflow")
    parser.add_argument('workflow', nargs='?', help='Workflow YAML/JSON file')
    parser.add_argument('--prompt', help='Describe the workflow in plain language instead of a file')
    parser.add_argument('--save', help='Save the workflow generated from --prompt to this file')
    parser.add_argument('--start-url', help='Open this URL before the first step')
    parser.add_argument('--cookies-file', default=workflow_config.COOKIES_FILE, help='Cookie file path')
    parser.add_argument('--headless', action='store_true', help='Run browser in headless mode')
    parser.add_argument('--visible', action='store_true', help='Run browser in visible mode')
    parser.add_argument('--dry-run', action='store_true', help='Print the workflow without running it')
    parser.add_argument('--verbose', action='store_true', help='Log remote requests and responses')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if not args.workflow and not args.prompt:
        parser.error("a workflow file or --prompt is required")

    # Determine headless mode
    if args.visible:
        args.headless = False
    elif not args.headless:
        args.headless = workflow_config.HEADLESS

    try:
        code = asyncio.run(run(args))
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except WorkflowRunnerError as e:
        logger.error(str(e))
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
