"""
Exception hierarchy for the workflow runner.

Every failure raised while walking a workflow ends up wrapped in a single
WorkflowError that carries the path of the failing step.
"""

from __future__ import annotations

from typing import Optional


class WorkflowRunnerError(Exception):
    """Base class for all errors raised by this project."""


class WorkflowError(WorkflowRunnerError):
    """A workflow run stopped at the step identified by ``path``."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Workflow failed at {path}: {message}")


class StepValidationError(WorkflowRunnerError):
    """A step is missing a field or has a field of the wrong kind."""


class ChannelError(WorkflowRunnerError):
    """Base class for failures talking to the execution target."""


class CommunicationError(ChannelError):
    """The request never produced a usable reply."""


class TransportError(CommunicationError):
    """Sending the message failed outright (target gone, transport closed)."""


class TargetClosedError(TransportError):
    """The target was closed before the message could be delivered."""


class NoResponseError(CommunicationError):
    """The target accepted the message but nobody answered."""


class InvalidResponseError(ChannelError):
    """The target answered with a structurally invalid reply."""


class RemoteActionError(ChannelError):
    """The target ran the request and reported a failure."""


class StepTimeoutError(WorkflowRunnerError):
    """A step ran out of its time budget."""


class NavigationError(WorkflowRunnerError):
    """A navigation could not be started, or the page never finished loading."""


class WorkflowLoadError(WorkflowRunnerError):
    """A workflow document could not be parsed or failed schema validation."""

    def __init__(self, message: str, errors: Optional[list[tuple[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []


class IntentParseError(WorkflowRunnerError):
    """A natural-language prompt could not be turned into a workflow."""
