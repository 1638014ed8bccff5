"""
Workflow loader.

Loads workflow documents from YAML (or JSON) text and files, checks them
against the workflow document schema and builds Workflow models.
"""

from typing import Any, Dict, List, Tuple
from pathlib import Path

import yaml
from pydantic import ValidationError

from workflow_errors import WorkflowLoadError
from workflow_models import (
    IfStep,
    LoopStep,
    NavigateStep,
    STEP_MODELS,
    UnknownStep,
    WaitForElementStep,
    WaitStep,
    Workflow,
)

ROOT_PROPERTIES = {'name', 'description', 'steps'}
CONDITION_TYPES = ('ifExists', 'ifValue')

SchemaError = Tuple[str, str]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_string(step: Dict[str, Any], key: str, path: str, errors: List[SchemaError]):
    if key not in step:
        errors.append((path, f"must have required property '{key}'"))
    elif not isinstance(step[key], str):
        errors.append((f"{path}/{key}", "must be string"))


def _validate_steps(steps: Any, path: str, errors: List[SchemaError]) -> None:
    if not isinstance(steps, list):
        errors.append((path, "must be array"))
        return
    for index, step in enumerate(steps):
        _validate_step(step, f"{path}/{index}", errors)


def _validate_step(step: Any, path: str, errors: List[SchemaError]) -> None:
    if not isinstance(step, dict):
        errors.append((path, "must be object"))
        return

    if 'action' not in step:
        errors.append((path, "must have required property 'action'"))
        return
    action = step['action']
    if not isinstance(action, str):
        errors.append((f"{path}/action", "must be string"))
        return

    if action == 'log':
        if 'value' not in step:
            errors.append((path, "must have required property 'value'"))

    elif action == 'wait':
        if 'value' not in step:
            errors.append((path, "must have required property 'value'"))
        elif not _is_int(step['value']) or step['value'] < 0:
            errors.append((f"{path}/value", "must be integer >= 0"))

    elif action == 'click':
        _require_string(step, 'selector', path, errors)

    elif action == 'type':
        _require_string(step, 'selector', path, errors)
        if 'value' not in step:
            errors.append((path, "must have required property 'value'"))

    elif action == 'navigate':
        _require_string(step, 'value', path, errors)

    elif action == 'waitForElement':
        _require_string(step, 'selector', path, errors)
        if 'timeout' in step and (not _is_int(step['timeout']) or step['timeout'] < 0):
            errors.append((f"{path}/timeout", "must be integer >= 0"))

    elif action == 'jsHatch':
        _require_string(step, 'code', path, errors)
        if 'selector' in step and not isinstance(step['selector'], str):
            errors.append((f"{path}/selector", "must be string"))

    elif action == 'if':
        condition = step.get('condition')
        if condition is None:
            errors.append((path, "must have required property 'condition'"))
        elif not isinstance(condition, dict):
            errors.append((f"{path}/condition", "must be object"))
        else:
            if condition.get('conditionType') not in CONDITION_TYPES:
                errors.append((f"{path}/condition/conditionType",
                               f"must be equal to one of the allowed values: {', '.join(CONDITION_TYPES)}"))
            _require_string(condition, 'selector', f"{path}/condition", errors)
            if 'equalsValue' in condition and not isinstance(condition['equalsValue'], str):
                errors.append((f"{path}/condition/equalsValue", "must be string"))
        if 'then' not in step:
            errors.append((path, "must have required property 'then'"))
        else:
            _validate_steps(step['then'], f"{path}/then", errors)
        if 'else' in step:
            _validate_steps(step['else'], f"{path}/else", errors)

    elif action == 'loop':
        for_each = step.get('forEach')
        if for_each is None:
            errors.append((path, "must have required property 'forEach'"))
        elif not isinstance(for_each, dict):
            errors.append((f"{path}/forEach", "must be object"))
        else:
            has_in = 'in' in for_each
            has_times = 'times' in for_each
            if has_in == has_times:
                errors.append((f"{path}/forEach", "must have exactly one of 'in' or 'times'"))
            elif has_in and not isinstance(for_each['in'], list):
                errors.append((f"{path}/forEach/in", "must be array"))
            elif has_times and (not _is_int(for_each['times']) or for_each['times'] < 1):
                errors.append((f"{path}/forEach/times", "must be integer >= 1"))
        if 'do' not in step:
            errors.append((path, "must have required property 'do'"))
        else:
            _validate_steps(step['do'], f"{path}/do", errors)

    # Unknown actions are accepted here; the executor skips them.


def validate_document(data: Any) -> List[SchemaError]:
    """
    Check a raw workflow document against the workflow schema.

    Args:
        data: Document as loaded from YAML/JSON

    Returns:
        List of (path, message) pairs; empty if the document is valid.
        Paths are JSON pointers such as '/steps/5/else/1'.
    """
    errors: List[SchemaError] = []

    if not isinstance(data, dict):
        return [('', "must be object")]

    for key in data:
        if key not in ROOT_PROPERTIES:
            errors.append(('', f"must NOT have additional properties ('{key}')"))

    for key in ('name', 'description'):
        if key in data and not isinstance(data[key], str):
            errors.append((f"/{key}", "must be string"))

    if 'steps' not in data:
        errors.append(('', "must have required property 'steps'"))
    else:
        _validate_steps(data['steps'], '/steps', errors)

    return errors


def format_errors(errors: List[SchemaError]) -> str:
    return '\n'.join(f"Error at path '{path}': {message}" for path, message in errors)


def parse_workflow(data: Any) -> Workflow:
    """
    Validate a raw document and build a Workflow.

    Raises:
        WorkflowLoadError: If the document fails schema validation
    """
    errors = validate_document(data)
    if errors:
        raise WorkflowLoadError(f"Schema validation failed:\n{format_errors(errors)}", errors)

    try:
        return Workflow.model_validate(data)
    except ValidationError as e:
        pydantic_errors = [
            ('/' + '/'.join(str(part) for part in err['loc']), err['msg'])
            for err in e.errors()
        ]
        raise WorkflowLoadError(
            f"Schema validation failed:\n{format_errors(pydantic_errors)}", pydantic_errors
        ) from e


def load_workflow_text(text: str) -> Workflow:
    """
    Parse YAML (or JSON) text into a validated Workflow.

    Raises:
        WorkflowLoadError: If the text can't be parsed or fails validation
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowLoadError(f"Failed to parse YAML: {e}") from e

    if not isinstance(data, dict):
        raise WorkflowLoadError("Parsed YAML is not a valid object.")

    return parse_workflow(data)


def load_workflow(file_path: str) -> Workflow:
    """
    Load a workflow from a YAML or JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        WorkflowLoadError: If the workflow is invalid
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Workflow file not found: {file_path}")

    with open(path, 'r', encoding='utf-8') as f:
        return load_workflow_text(f.read())


def dump_workflow(workflow: Workflow) -> str:
    """Serialize a workflow back to YAML using the file field names."""
    return yaml.safe_dump(workflow.to_document(), default_flow_style=False, sort_keys=False)


def lint_workflow(workflow: Workflow) -> List[str]:
    """
    Check a valid workflow for likely mistakes and return warnings (not errors).

    Args:
        workflow: Workflow to check

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings: List[str] = []

    if not workflow.steps:
        warnings.append("Workflow has no steps - nothing will run")

    _lint_steps(workflow.steps, 'steps', warnings)
    return warnings


def _lint_steps(steps, path: str, warnings: List[str]) -> None:
    for index, step in enumerate(steps):
        step_path = f"{path}[{index}]"

        if isinstance(step, NavigateStep):
            url = str(step.value or '')
            if not url.startswith('http://') and not url.startswith('https://') and '{{item}}' not in url:
                warnings.append(f"{step_path}: URL may be invalid (missing http/https): {url}")
            following = steps[index + 1] if index + 1 < len(steps) else None
            if following is not None and not isinstance(following, WaitForElementStep):
                warnings.append(
                    f"{step_path}: navigate is not followed by waitForElement - "
                    f"the next step may run against a half-loaded page"
                )

        elif isinstance(step, WaitStep) and step.value is not None and step.value > 60000:
            warnings.append(f"{step_path}: wait is very long: {step.value}ms")

        elif isinstance(step, WaitForElementStep) and step.timeout is not None and step.timeout > 120000:
            warnings.append(f"{step_path}: waitForElement timeout is very high: {step.timeout}ms")

        elif isinstance(step, UnknownStep):
            warnings.append(
                f"{step_path}: unknown action '{step.action}' will be skipped "
                f"(known: {', '.join(STEP_MODELS)})"
            )

        elif isinstance(step, IfStep):
            _lint_steps(step.then or [], f"{step_path}/then", warnings)
            _lint_steps(step.else_ or [], f"{step_path}/else", warnings)

        elif isinstance(step, LoopStep):
            _lint_steps(step.do or [], f"{step_path}/do", warnings)
