"""Language model access for extraction and workflow generation."""

from .client import OpenRouterClient, WorkflowGenerator
from .prompts import SYSTEM_PROMPT, build_generation_messages

__all__ = ["OpenRouterClient", "WorkflowGenerator", "SYSTEM_PROMPT", "build_generation_messages"]
