"""Executors that read and update JSON documents."""

import json
from typing import Any, Optional

from ..core.environment import ExecutionEnvironment


def _load_object(env: ExecutionEnvironment) -> Optional[dict]:
    raw = env.get_input("JSON")
    if not raw:
        env.log.error("input -> JSON is not defined")
        return None
    if isinstance(raw, dict):
        return raw
    try:
        document = json.loads(raw)
    except (TypeError, ValueError) as e:
        env.log.error(f"Invalid JSON input: {str(e)}")
        return None
    if not isinstance(document, dict):
        env.log.error("JSON input must be an object")
        return None
    return document


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def read_property_from_json(env: ExecutionEnvironment) -> bool:
    document = _load_object(env)
    if document is None:
        return False
    name = env.get_input("Property name")
    if not name:
        env.log.error("input -> Property name is not defined")
        return False
    if name not in document:
        env.log.error("Property not found")
        return False
    env.set_output("Property Value", _as_text(document[name]))
    return True


def add_property_to_json(env: ExecutionEnvironment) -> bool:
    document = _load_object(env)
    if document is None:
        return False
    name = env.get_input("Property name")
    if not name:
        env.log.error("input -> Property name is not defined")
        return False
    value = env.get_input("Property value")
    if not value:
        env.log.error("input -> Property value is not defined")
        return False
    updated = dict(document)
    updated[name] = value
    env.set_output("Update JSON", json.dumps(updated))
    return True
