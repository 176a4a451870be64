"""Locate the most likely JSON payload inside a model response."""

import re
from typing import List, Optional

from .text_repair import enclosing_object, extract_balanced
from .logging import get_logger

logger = get_logger(__name__)

# Candidates shorter than this only qualify by mentioning a graph key.
LONG_CANDIDATE_LENGTH = 500

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE_RE = re.compile(r"```\s*([\s\S]*?)```")
_WORKFLOW_KEY_RE = re.compile(r'"workflow"\s*:\s*\{')


def find_fenced_json(text: str) -> Optional[str]:
    match = _JSON_FENCE_RE.search(text)
    return match.group(1).strip() if match else None


def find_fenced_block(text: str) -> Optional[str]:
    match = _ANY_FENCE_RE.search(text)
    return match.group(1).strip() if match else None


def find_workflow_object(text: str) -> Optional[str]:
    """Innermost balanced object that encloses a ``"workflow": {...}`` key.

    Found with one linear scan, so nested braces inside the workflow are
    not cut short and truncated or repetitive text stays cheap.
    """
    key = _WORKFLOW_KEY_RE.search(text)
    if key is None:
        return None
    position = enclosing_object(text, key.start())
    if position < 0:
        return None
    return extract_balanced(text, position)


def balanced_object_spans(text: str) -> List[str]:
    """Every top-level ``{...}`` span, each closed by the balancing scan."""
    spans = []
    position = text.find("{")
    while position != -1:
        span = extract_balanced(text, position)
        spans.append(span)
        if text[position:position + len(span)] != span:
            # Unterminated span ran to the end of the text.
            break
        position = text.find("{", position + len(span))
    return spans


def find_largest_candidate(text: str) -> Optional[str]:
    candidates = [
        span for span in balanced_object_spans(text)
        if '"nodes"' in span or '"workflow"' in span or len(span) > LONG_CANDIDATE_LENGTH
    ]
    if not candidates:
        return None
    return max(candidates, key=len)


STRATEGIES = (
    ("fenced_json", find_fenced_json),
    ("fenced_block", find_fenced_block),
    ("workflow_object", find_workflow_object),
    ("largest_candidate", find_largest_candidate),
)


def locate_payload(text: str) -> str:
    """Best-effort JSON substring of ``text``.

    Strategies run in order and the first hit wins; with no hit the whole
    trimmed text is returned. Empty only when the input is blank.
    """
    for name, strategy in STRATEGIES:
        found = strategy(text)
        if found:
            logger.debug(f"Payload located by {name} strategy ({len(found)} chars)")
            return found
    return text.strip()
