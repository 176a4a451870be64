"""Incremental parsing of a streamed model response."""

from typing import Iterable, Optional

from ..models.core import ParseResult
from .exceptions import ErrorCategory, WebExtractError
from .recovery_parser import parse_workflow


class WorkflowStreamReducer:
    """
    Accumulates streamed text and re-parses it after every chunk.

    ``feed`` is a live preview only: it never has side effects, and a
    caller may stop feeding at any point without cleanup. ``finish`` runs
    the single final parse whose result callers may act on.
    """

    def __init__(self):
        self.text = ""
        self.latest: Optional[ParseResult] = None
        self.final: Optional[ParseResult] = None

    def feed(self, chunk: str) -> ParseResult:
        if self.final is not None:
            raise WebExtractError("Stream already finished", category=ErrorCategory.PARSING)
        self.text += chunk
        self.latest = parse_workflow(self.text, streaming=True)
        return self.latest

    def finish(self) -> ParseResult:
        if self.final is None:
            self.final = parse_workflow(self.text, streaming=False)
        return self.final


def reduce_stream(chunks: Iterable[str]) -> ParseResult:
    """Consume a whole chunk sequence and return the final parse."""
    reducer = WorkflowStreamReducer()
    for chunk in chunks:
        reducer.feed(chunk)
    return reducer.finish()
