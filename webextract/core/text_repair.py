"""Text passes that turn noisy model output into decodable JSON.

Every pass is a total ``str -> str`` function so each heuristic can be
tested on its own. Passes are composed by ``apply_passes`` in the order
listed in ``CLEANUP_PASSES``, ``PAYLOAD_PASSES`` and ``REPAIR_PASSES``.
"""

import re
from typing import Callable, Iterable, List, Optional, Tuple

TextPass = Callable[[str], str]

SMART_QUOTES = "“”„‟«»‘’‚‛‹›"

_SMART_QUOTE_RE = re.compile("[" + SMART_QUOTES + "]")
_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
# `//` only counts at line start or after whitespace so `https://` survives.
_LINE_COMMENT_RE = re.compile(r"(^|\s)//.*$", re.MULTILINE)
_MEASURED_RE = re.compile(r'"measured"\s*:\s*\{[^}]*\}\s*,?')
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([a-zA-Z_$][a-zA-Z0-9_$]*)\s*:")

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}": "{", "]": "["}


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_quotes(text: str) -> str:
    """Replace typographic quotation marks with a plain double quote."""
    return _SMART_QUOTE_RE.sub('"', text)


def strip_comments(text: str) -> str:
    """Remove block and line comments.

    Works on raw text, so a string value that looks like a comment
    (``"a // b"``) is cut as well.
    """
    text = _BLOCK_COMMENT_RE.sub("", text)
    return _LINE_COMMENT_RE.sub(r"\1", text)


def strip_measured(text: str) -> str:
    """Drop the editor's ``"measured": {...}`` size object from nodes."""
    return _MEASURED_RE.sub("", text)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def quote_unquoted_keys(text: str) -> str:
    return _UNQUOTED_KEY_RE.sub(r'\1"\2":', text)


def single_to_double_quotes(text: str) -> str:
    return text.replace("'", '"')


def _scan(text: str, start: int = 0, stop: Optional[int] = None,
          stop_when_closed: bool = False) -> Tuple[Optional[int], bool, bool, List[int]]:
    """Walk ``text[start:stop]`` tracking string state and the open bracket stack.

    Returns ``(end, in_string, escaped, stack)`` where ``stack`` holds the
    positions of the openers still open and ``end`` is the index of the
    closer that emptied the stack when ``stop_when_closed`` is set.
    Stray closers that do not match the top of the stack are ignored.
    """
    stack: List[int] = []
    in_string = False
    escaped = False
    for index in range(start, len(text) if stop is None else stop):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _OPENERS:
            stack.append(index)
        elif char in _CLOSERS:
            if stack and text[stack[-1]] == _CLOSERS[char]:
                stack.pop()
                if stop_when_closed and not stack:
                    return index, False, False, stack
    return None, in_string, escaped, stack


def _close(text: str, in_string: bool, escaped: bool, closers: str) -> str:
    if in_string:
        if escaped:
            # A dangling backslash would escape the closing quote.
            text = text[:-1]
        text += '"'
    return text + closers


def _closers(text: str, stack: List[int]) -> str:
    return "".join(_OPENERS[text[position]] for position in reversed(stack))


def balance_brackets(text: str) -> str:
    """Close an unterminated string and every open ``{``/``[``, innermost first."""
    _, in_string, escaped, stack = _scan(text)
    return _close(text, in_string, escaped, _closers(text, stack))


def find_opener(text: str, start: int = 0) -> int:
    """Index of the first ``{`` or ``[`` at or after ``start``, or -1."""
    positions = [pos for pos in (text.find("{", start), text.find("[", start)) if pos != -1]
    return min(positions) if positions else -1


def enclosing_object(text: str, index: int) -> int:
    """Index of the innermost ``{`` still open at ``index``, or -1.

    The scan starts at the first opener so quotes in leading prose do not
    flip the string state.
    """
    start = find_opener(text)
    if start < 0 or start >= index:
        return -1
    _, _, _, stack = _scan(text, start, stop=index)
    for position in reversed(stack):
        if text[position] == "{":
            return position
    return -1


def extract_balanced(text: str, start: Optional[int] = None) -> str:
    """Return the balanced span beginning at the first opener.

    The span ends at the closer that matches the opener; if the text runs
    out first, the remainder is closed with ``balance_brackets`` rules.
    Text with no opener comes back trimmed.
    """
    if start is None:
        start = find_opener(text)
    if start < 0:
        return text.strip()
    end, in_string, escaped, stack = _scan(text, start, stop_when_closed=True)
    if end is not None:
        return text[start:end + 1]
    return _close(text[start:], in_string, escaped, _closers(text, stack))


def apply_passes(text: str, passes: Iterable[TextPass]) -> str:
    for text_pass in passes:
        text = text_pass(text)
    return text


# Applied to the whole response before the payload is located.
CLEANUP_PASSES: Tuple[TextPass, ...] = (
    normalize_newlines,
    normalize_quotes,
    strip_comments,
)

# Applied to the located payload before the first decode attempt.
PAYLOAD_PASSES: Tuple[TextPass, ...] = (
    strip_measured,
    strip_trailing_commas,
    extract_balanced,
)

# Applied after a failed decode, before the second attempt.
REPAIR_PASSES: Tuple[TextPass, ...] = (
    quote_unquoted_keys,
    single_to_double_quotes,
    strip_trailing_commas,
    extract_balanced,
)
