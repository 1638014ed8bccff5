"""
Workflow data models.

Defines the document structure for workflows: a list of steps, each tagged
by its ``action``. Control-flow steps ('if', 'loop') own nested step lists,
so a workflow is a tree.

Field names follow the camelCase used in workflow files (``forEach``,
``conditionType``, ...); the Python attributes are snake_case and either
spelling is accepted when building models.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Condition(_Model):
    condition_type: Optional[Literal["ifExists", "ifValue"]] = Field(default=None, alias="conditionType")
    selector: Optional[str] = None
    equals_value: Optional[str] = Field(default=None, alias="equalsValue")


class LoopSource(_Model):
    items: Optional[list[Any]] = Field(default=None, alias="in")
    times: Optional[float] = None


# Required fields default to None here; the loader's schema validation and
# the executor's per-action checks decide what is actually required.

class LogStep(_Model):
    action: Literal["log"] = "log"
    value: Any = None


class WaitStep(_Model):
    action: Literal["wait"] = "wait"
    value: Optional[int] = None  # milliseconds


class ClickStep(_Model):
    action: Literal["click"] = "click"
    selector: Optional[str] = None
    value: Any = None


class TypeStep(_Model):
    action: Literal["type"] = "type"
    selector: Optional[str] = None
    value: Any = None


class NavigateStep(_Model):
    action: Literal["navigate"] = "navigate"
    value: Any = None  # URL


class WaitForElementStep(_Model):
    action: Literal["waitForElement"] = "waitForElement"
    selector: Optional[str] = None
    timeout: Optional[int] = None  # milliseconds, executor default when unset


class JsHatchStep(_Model):
    action: Literal["jsHatch"] = "jsHatch"
    code: Optional[str] = None
    description: Optional[str] = None
    value: Any = None
    selector: Optional[str] = None


class IfStep(_Model):
    action: Literal["if"] = "if"
    condition: Optional[Condition] = None
    then: Optional[list[Step]] = None
    else_: Optional[list[Step]] = Field(default=None, alias="else")


class LoopStep(_Model):
    action: Literal["loop"] = "loop"
    for_each: Optional[LoopSource] = Field(default=None, alias="forEach")
    do: Optional[list[Step]] = None


class UnknownStep(_Model):
    """A step whose action this version doesn't understand; kept so it can be skipped."""

    model_config = ConfigDict(extra="allow", frozen=True)

    action: str


STEP_MODELS: dict[str, type[BaseModel]] = {
    "log": LogStep,
    "wait": WaitStep,
    "click": ClickStep,
    "type": TypeStep,
    "navigate": NavigateStep,
    "waitForElement": WaitForElementStep,
    "jsHatch": JsHatchStep,
    "if": IfStep,
    "loop": LoopStep,
}


def _step_tag(value: Any) -> str:
    if isinstance(value, dict):
        action = value.get("action")
    else:
        action = getattr(value, "action", None)
    return action if action in STEP_MODELS else "unknown"


Step = Annotated[
    Union[
        Annotated[LogStep, Tag("log")],
        Annotated[WaitStep, Tag("wait")],
        Annotated[ClickStep, Tag("click")],
        Annotated[TypeStep, Tag("type")],
        Annotated[NavigateStep, Tag("navigate")],
        Annotated[WaitForElementStep, Tag("waitForElement")],
        Annotated[JsHatchStep, Tag("jsHatch")],
        Annotated[IfStep, Tag("if")],
        Annotated[LoopStep, Tag("loop")],
        Annotated[UnknownStep, Tag("unknown")],
    ],
    Discriminator(_step_tag),
]


class Workflow(_Model):
    name: Optional[str] = None
    description: Optional[str] = None
    steps: list[Step] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Return the workflow as a plain dict using the file field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


IfStep.model_rebuild()
LoopStep.model_rebuild()
Workflow.model_rebuild()
