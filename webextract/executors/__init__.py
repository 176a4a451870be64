"""Executor functions, one per task kind."""

from typing import Callable, Dict, Optional

from ..core.environment import ExecutionEnvironment
from ..core.task_registry import TaskType
from .browser import (
    launch_browser, page_to_html, fill_input, click_element,
    wait_for_element, navigate_url, scroll_to_element
)
from .delivery import deliver_via_webhook
from .export import export_to_powerbi
from .extraction import extract_text_from_element, extract_data_with_ai
from .json_tasks import read_property_from_json, add_property_to_json

Executor = Callable[[ExecutionEnvironment], bool]

EXECUTORS: Dict[TaskType, Executor] = {
    TaskType.LAUNCH_BROWSER: launch_browser,
    TaskType.PAGE_TO_HTML: page_to_html,
    TaskType.EXTRACT_TEXT_FROM_ELEMENT: extract_text_from_element,
    TaskType.FILL_INPUT: fill_input,
    TaskType.CLICK_ELEMENT: click_element,
    TaskType.WAIT_FOR_ELEMENT: wait_for_element,
    TaskType.NAVIGATE_URL: navigate_url,
    TaskType.SCROLL_TO_ELEMENT: scroll_to_element,
    TaskType.DELIVER_VIA_WEBHOOK: deliver_via_webhook,
    TaskType.EXTRACT_DATA_WITH_AI: extract_data_with_ai,
    TaskType.READ_PROPERTY_FROM_JSON: read_property_from_json,
    TaskType.ADD_PROPERTY_TO_JSON: add_property_to_json,
    TaskType.EXPORT_TO_POWERBI: export_to_powerbi,
}


def get_executor(task_type: str) -> Optional[Executor]:
    try:
        return EXECUTORS.get(TaskType(task_type))
    except ValueError:
        return None


__all__ = ["Executor", "EXECUTORS", "get_executor"]
