"""Static catalog of task kinds and their typed ports."""

from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class TaskType(str, Enum):
    """Closed enumeration of task kinds a node may perform."""
    LAUNCH_BROWSER = "LAUNCH_BROWSER"
    PAGE_TO_HTML = "PAGE_TO_HTML"
    EXTRACT_TEXT_FROM_ELEMENT = "EXTRACT_TEXT_FROM_ELEMENT"
    FILL_INPUT = "FILL_INPUT"
    CLICK_ELEMENT = "CLICK_ELEMENT"
    WAIT_FOR_ELEMENT = "WAIT_FOR_ELEMENT"
    NAVIGATE_URL = "NAVIGATE_URL"
    SCROLL_TO_ELEMENT = "SCROLL_TO_ELEMENT"
    DELIVER_VIA_WEBHOOK = "DELIVER_VIA_WEBHOOK"
    EXTRACT_DATA_WITH_AI = "EXTRACT_DATA_WITH_AI"
    READ_PROPERTY_FROM_JSON = "READ_PROPERTY_FROM_JSON"
    ADD_PROPERTY_TO_JSON = "ADD_PROPERTY_TO_JSON"
    EXPORT_TO_POWERBI = "EXPORT_TO_POWERBI"


class TaskParamType(str, Enum):
    """Value type carried by a port."""
    STRING = "STRING"
    BROWSER_INSTANCE = "BROWSER_INSTANCE"
    SELECT = "SELECT"
    CREDENTIAL = "CREDENTIAL"


class TaskParam(BaseModel):
    """A named input or output port."""
    model_config = ConfigDict(frozen=True)

    name: str
    type: TaskParamType
    required: bool = False
    hidden: bool = Field(False, description="Set from node inputs only, never wired")
    options: Tuple[str, ...] = ()


class TaskDefinition(BaseModel):
    """Registry entry describing one task kind."""
    model_config = ConfigDict(frozen=True)

    type: TaskType
    label: str
    inputs: Tuple[TaskParam, ...] = ()
    outputs: Tuple[TaskParam, ...] = ()
    is_entry_point: bool = False
    credits: int = 1

    def get_input(self, name: str) -> Optional[TaskParam]:
        for param in self.inputs:
            if param.name == name:
                return param
        return None

    def first_output(self) -> Optional[TaskParam]:
        return self.outputs[0] if self.outputs else None

    def first_wirable_input(self) -> Optional[TaskParam]:
        for param in self.inputs:
            if not param.hidden:
                return param
        return None


def _web_page(required: bool = True) -> TaskParam:
    return TaskParam(name="Web page", type=TaskParamType.BROWSER_INSTANCE, required=required)


def _string(name: str, required: bool = True, hidden: bool = False) -> TaskParam:
    return TaskParam(name=name, type=TaskParamType.STRING, required=required, hidden=hidden)


CHART_TYPES = ("bar", "line", "pie", "scatter")

TASK_REGISTRY: Dict[TaskType, TaskDefinition] = {
    TaskType.LAUNCH_BROWSER: TaskDefinition(
        type=TaskType.LAUNCH_BROWSER,
        label="Launch browser",
        inputs=(_string("Website Url", hidden=True),),
        outputs=(_web_page(),),
        is_entry_point=True,
        credits=5,
    ),
    TaskType.PAGE_TO_HTML: TaskDefinition(
        type=TaskType.PAGE_TO_HTML,
        label="Get html from page",
        inputs=(_web_page(),),
        outputs=(_string("Html"), _web_page()),
        credits=2,
    ),
    TaskType.EXTRACT_TEXT_FROM_ELEMENT: TaskDefinition(
        type=TaskType.EXTRACT_TEXT_FROM_ELEMENT,
        label="Extract text from element",
        inputs=(_string("Html"), _string("Selector")),
        outputs=(_string("Extracted text"),),
        credits=2,
    ),
    TaskType.FILL_INPUT: TaskDefinition(
        type=TaskType.FILL_INPUT,
        label="Fill input",
        inputs=(_web_page(), _string("Selector"), _string("Value")),
        outputs=(_web_page(),),
    ),
    TaskType.CLICK_ELEMENT: TaskDefinition(
        type=TaskType.CLICK_ELEMENT,
        label="Click element",
        inputs=(_web_page(), _string("Selector")),
        outputs=(_web_page(),),
    ),
    TaskType.WAIT_FOR_ELEMENT: TaskDefinition(
        type=TaskType.WAIT_FOR_ELEMENT,
        label="Wait for element",
        inputs=(
            _web_page(),
            _string("Selector"),
            TaskParam(
                name="Visibility",
                type=TaskParamType.SELECT,
                required=True,
                hidden=True,
                options=("visible", "hidden"),
            ),
        ),
        outputs=(_web_page(),),
    ),
    TaskType.NAVIGATE_URL: TaskDefinition(
        type=TaskType.NAVIGATE_URL,
        label="Navigate Url",
        inputs=(_web_page(), _string("URL")),
        outputs=(_web_page(),),
        credits=2,
    ),
    TaskType.SCROLL_TO_ELEMENT: TaskDefinition(
        type=TaskType.SCROLL_TO_ELEMENT,
        label="Scroll to element",
        inputs=(_web_page(), _string("Selector")),
        outputs=(_web_page(),),
    ),
    TaskType.DELIVER_VIA_WEBHOOK: TaskDefinition(
        type=TaskType.DELIVER_VIA_WEBHOOK,
        label="Deliver via Webhook",
        inputs=(_string("Target URL", hidden=True), _string("Body")),
        outputs=(),
    ),
    TaskType.EXTRACT_DATA_WITH_AI: TaskDefinition(
        type=TaskType.EXTRACT_DATA_WITH_AI,
        label="Extract data with AI",
        inputs=(
            _string("Content"),
            TaskParam(name="Credentials", type=TaskParamType.CREDENTIAL, required=True, hidden=True),
            _string("Prompt", hidden=True),
        ),
        outputs=(_string("Extracted Data"),),
        credits=4,
    ),
    TaskType.READ_PROPERTY_FROM_JSON: TaskDefinition(
        type=TaskType.READ_PROPERTY_FROM_JSON,
        label="Read property from JSON",
        inputs=(_string("JSON"), _string("Property name")),
        outputs=(_string("Property Value"),),
    ),
    TaskType.ADD_PROPERTY_TO_JSON: TaskDefinition(
        type=TaskType.ADD_PROPERTY_TO_JSON,
        label="Add property to JSON",
        inputs=(_string("JSON"), _string("Property name"), _string("Property value")),
        outputs=(_string("Update JSON"),),
    ),
    TaskType.EXPORT_TO_POWERBI: TaskDefinition(
        type=TaskType.EXPORT_TO_POWERBI,
        label="Visualize & Export",
        inputs=(
            _string("Data"),
            TaskParam(
                name="Chart Type",
                type=TaskParamType.SELECT,
                required=True,
                hidden=True,
                options=CHART_TYPES,
            ),
        ),
        outputs=(
            _string("Power BI CSV"),
            _string("Template File"),
            _string("Auto Download"),
            _string("Visualization Config"),
            _string("HTML Report"),
            _string("Visualization Image"),
            _string("Visualization Image URL"),
        ),
        credits=2,
    ),
}


def get_task_definition(task_type: str) -> Optional[TaskDefinition]:
    """Look up a definition by its string tag; unknown tags give None."""
    try:
        return TASK_REGISTRY[TaskType(task_type)]
    except ValueError:
        return None


def is_known_task(task_type: str) -> bool:
    return get_task_definition(task_type) is not None


def entry_point_types() -> List[TaskType]:
    return [definition.type for definition in TASK_REGISTRY.values() if definition.is_entry_point]


def is_entry_point(task_type: str) -> bool:
    definition = get_task_definition(task_type)
    return definition is not None and definition.is_entry_point
