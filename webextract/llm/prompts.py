"""Prompts used to author workflows with a language model."""

import json
from typing import Any, Dict, List, Optional

from ..core.task_registry import TASK_REGISTRY, TaskDefinition
from ..models.core import NODE_REPRESENTATION_TYPE

HISTORY_LIMIT = 5

_EXAMPLE = {
    "workflow": {
        "nodes": [
            {
                "id": "launch-1",
                "type": NODE_REPRESENTATION_TYPE,
                "data": {"type": "LAUNCH_BROWSER", "inputs": {"Website Url": "https://quotes.toscrape.com"}},
                "position": {"x": 0, "y": 0}
            },
            {
                "id": "html-1",
                "type": NODE_REPRESENTATION_TYPE,
                "data": {"type": "PAGE_TO_HTML", "inputs": {"Web page": ""}},
                "position": {"x": 450, "y": 0}
            },
            {
                "id": "ai-1",
                "type": NODE_REPRESENTATION_TYPE,
                "data": {
                    "type": "EXTRACT_DATA_WITH_AI",
                    "inputs": {
                        "Content": "",
                        "Credentials": "default",
                        "Prompt": "Extract every quote as a JSON array of objects with fields text and author."
                    }
                },
                "position": {"x": 900, "y": 0}
            }
        ],
        "edges": [
            {"id": "edge-launch-1-html-1", "source": "launch-1", "sourceHandle": "Web page",
             "target": "html-1", "targetHandle": "Web page"},
            {"id": "edge-html-1-ai-1", "source": "html-1", "sourceHandle": "Html",
             "target": "ai-1", "targetHandle": "Content"}
        ]
    },
    "explanation": "Opens the quotes site, renders it to HTML and asks the model for the quotes."
}


def describe_task(definition: TaskDefinition) -> str:
    """One catalog line per task kind with its exact port names."""
    inputs = ", ".join(
        f'"{param.name}"' + (" (required)" if param.required else "")
        for param in definition.inputs
    ) or "none"
    outputs = ", ".join(f'"{param.name}"' for param in definition.outputs) or "none"
    line = f"- {definition.type.value}: {definition.label}. Inputs: {inputs}. Outputs: {outputs}."
    for param in definition.inputs:
        if param.options:
            line += f' "{param.name}" is one of: {", ".join(param.options)}.'
    return line


def build_system_prompt() -> str:
    catalog = "\n".join(describe_task(definition) for definition in TASK_REGISTRY.values())
    return f"""You are an expert web scraping workflow generator. You help users create automated workflows for web scraping tasks.

## Available task types
{catalog}

## Response format
Respond with a JSON object containing "workflow" and "explanation" fields, for example:
{json.dumps(_EXAMPLE, indent=2)}

## Rules
1. Always start with LAUNCH_BROWSER as the first node.
2. Give every node a unique id and the node type "{NODE_REPRESENTATION_TYPE}".
3. Position nodes left to right, 450 px apart; put branches 350 px lower.
4. Connect every node with edges whose sourceHandle and targetHandle are exact port names from the catalog.
5. For EXTRACT_DATA_WITH_AI always write a detailed "Prompt" naming the fields and the JSON shape to return.
6. Set "Credentials" to "default" unless the user names a credential.
7. Only use the task types listed above.
8. Keep explanations in the "explanation" field, never inside the workflow JSON."""


SYSTEM_PROMPT = build_system_prompt()


def generate_workflow_prompt(request: str) -> str:
    return (
        f'Generate a web scraping workflow for the following request:\n\n"{request}"\n\n'
        "Return a complete workflow JSON with nodes and edges that accomplishes this task. "
        "Include a clear explanation of what the workflow does."
    )


def modify_workflow_prompt(request: str, current_workflow: Dict[str, Any],
                           history: Optional[List[Dict[str, str]]] = None) -> str:
    prompt = (
        f'Modify the following workflow based on this request:\n\n"{request}"\n\n'
        f"Current workflow:\n{json.dumps(current_workflow, indent=2)}\n\n"
    )
    recent = (history or [])[-HISTORY_LIMIT:]
    if recent:
        lines = "\n".join(f"{message.get('role', 'user')}: {message.get('content', '')}" for message in recent)
        prompt += f"Recent conversation context:\n{lines}\n\n"
    prompt += "Return the modified workflow JSON with nodes and edges. Include an explanation of the changes made."
    return prompt


def build_generation_messages(request: str, current_workflow: Optional[Dict[str, Any]] = None,
                              history: Optional[List[Dict[str, str]]] = None) -> List[Dict[str, str]]:
    if current_workflow:
        user_prompt = modify_workflow_prompt(request, current_workflow, history)
    else:
        user_prompt = generate_workflow_prompt(request)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
