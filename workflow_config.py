"""
Configuration settings for the workflow runner.

Every value can be overridden through an environment variable so the CLI,
the API server and the tests can share one set of defaults.
"""

import os

# Maximum time to wait for a page load after a 'navigate' step (milliseconds)
# This is independent of the per-step 'timeout' on waitForElement steps
NAVIGATION_TIMEOUT_MS = int(os.environ.get("WORKFLOW_NAVIGATION_TIMEOUT_MS", "15000"))

# Delay after the page reports load complete, so page scripts can attach
NAVIGATION_SETTLE_DELAY_MS = int(os.environ.get("WORKFLOW_NAVIGATION_SETTLE_MS", "500"))

# Default timeout for waitForElement steps that don't set their own
DEFAULT_ELEMENT_TIMEOUT_MS = 15000

# How often waitForElement asks the page whether the element is there
ELEMENT_POLL_INTERVAL_MS = int(os.environ.get("WORKFLOW_ELEMENT_POLL_MS", "500"))

# Initial pause before the first element check, so a navigation that was
# just started doesn't answer for the old page
ELEMENT_GRACE_DELAY_MS = int(os.environ.get("WORKFLOW_ELEMENT_GRACE_MS", "300"))

# Browser headless mode
# False = browser window visible (useful for debugging workflows)
HEADLESS = os.environ.get("WORKFLOW_HEADLESS", "1").lower() not in ("0", "false", "no")

# Cookies are loaded before a run and saved back afterwards
COOKIES_FILE = os.environ.get("WORKFLOW_COOKIES_FILE", "output/browser_session/cookies.json")

# Directory holding saved workflow YAML files (used by the API server)
WORKFLOWS_DIR = os.environ.get("WORKFLOWS_DIR", "workflows")

# Language model CLI used to turn prompts into workflows
LLM_CLI_BIN = os.environ.get("WORKFLOW_LLM_BIN", "claude")

# Seconds to wait for the language model before giving up
LLM_TIMEOUT = int(os.environ.get("WORKFLOW_LLM_TIMEOUT", "120"))
