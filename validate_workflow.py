"""
Simple script to validate a workflow file.

Usage:
    python validate_workflow.py workflows/example_search.yaml
"""

import sys
import logging

from workflow_errors import WorkflowLoadError
from workflow_loader import load_workflow, lint_workflow
from workflow_models import IfStep, LoopStep

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def count_steps(steps) -> int:
    """Count steps including those nested in if/loop blocks."""
    total = 0
    for step in steps:
        total += 1
        if isinstance(step, IfStep):
            total += count_steps(step.then or []) + count_steps(step.else_ or [])
        elif isinstance(step, LoopStep):
            total += count_steps(step.do or [])
    return total


def main():
    if len(sys.argv) < 2:
        print("Usage: python validate_workflow.py <workflow_file>")
        sys.exit(1)

    workflow_file = sys.argv[1]

    try:
        logger.info(f"Loading workflow: {workflow_file}")
        workflow = load_workflow(workflow_file)

        logger.info("✓ Workflow loaded successfully")
        logger.info(f"  Name: {workflow.name or '(unnamed)'}")
        if workflow.description:
            logger.info(f"  Description: {workflow.description}")
        logger.info(f"  Top-level steps: {len(workflow.steps)}")
        logger.info(f"  Total steps (incl. nested): {count_steps(workflow.steps)}")
        for index, step in enumerate(workflow.steps):
            logger.info(f"    steps[{index}]: {step.action}")

        warnings = lint_workflow(workflow)
        if warnings:
            logger.warning("Validation warnings:")
            for warning in warnings:
                logger.warning(f"  - {warning}")
        else:
            logger.info("✓ No validation warnings")

        logger.info("")
        logger.info("Workflow is valid and ready to use!")
        logger.info(f"Run with: python run_workflow.py {workflow_file}")

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except WorkflowLoadError as e:
        logger.error(f"Invalid workflow: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
