"""Path glob compilation.

Supported syntax:

- ``*`` matches any run of characters inside one path segment
- ``**`` as a whole segment matches zero or more segments
- ``?`` matches one character other than ``/``
- ``[abc]``, ``[a-z]``, ``[!abc]`` character classes
- ``{one,two}`` alternation inside a segment
- ``\\`` escapes the following character
"""

from __future__ import annotations

import re
from collections.abc import Iterable


class GlobSyntaxError(ValueError):
    """Raised for a syntactically invalid glob pattern."""

    def __init__(self, glob: str, reason: str) -> None:
        super().__init__(f"invalid glob {glob!r}: {reason}")
        self.glob = glob
        self.reason = reason


def compile_glob(glob: str) -> re.Pattern[str]:
    """Compile a single glob into an anchored regular expression."""
    translated = translate_glob(glob)
    try:
        return re.compile(translated)
    except re.error as exc:
        # e.g. a reversed class range such as [z-a]
        raise GlobSyntaxError(glob, str(exc)) from exc


def compile_globs(globs: Iterable[str]) -> re.Pattern[str]:
    """Compile several globs into one alternation; matches if any glob matches."""
    translated = [compile_glob(glob).pattern for glob in globs]
    if not translated:
        raise GlobSyntaxError("", "at least one glob is required")
    return re.compile("|".join(f"(?:{item})" for item in translated))


def translate_glob(glob: str) -> str:
    """Translate a glob into a regular expression for use with ``fullmatch``."""
    if not glob:
        raise GlobSyntaxError(glob, "empty pattern")
    body = glob[1:] if glob.startswith("/") else glob
    segments = body.split("/")
    if any(segment == "" for segment in segments):
        raise GlobSyntaxError(glob, "empty path segment")

    collapsed: list[str] = []
    for segment in segments:
        if segment == "**" and collapsed and collapsed[-1] == "**":
            continue
        collapsed.append(segment)

    pieces: list[str] = []
    last = len(collapsed) - 1
    for position, segment in enumerate(collapsed):
        if segment == "**":
            if last == 0:
                pieces.append(".*")
            elif position == 0:
                pieces.append("(?:.*/)?")
            elif position == last:
                pieces.append("/.*")
            else:
                pieces.append("/(?:.*/)?")
            continue
        if "**" in segment:
            raise GlobSyntaxError(glob, "'**' must be a whole path segment")
        if position > 0 and collapsed[position - 1] != "**":
            pieces.append("/")
        pieces.append(_translate_segment(glob, segment, in_braces=False))
    return "".join(pieces)


def _translate_segment(glob: str, segment: str, *, in_braces: bool) -> str:
    out: list[str] = []
    index = 0
    length = len(segment)
    while index < length:
        char = segment[index]
        if char == "*":
            out.append("[^/]*")
            index += 1
        elif char == "?":
            out.append("[^/]")
            index += 1
        elif char == "[":
            translated, index = _translate_class(glob, segment, index)
            out.append(translated)
        elif char == "{":
            if in_braces:
                raise GlobSyntaxError(glob, "nested '{' is not supported")
            translated, index = _translate_braces(glob, segment, index)
            out.append(translated)
        elif char == "\\":
            if index + 1 >= length:
                raise GlobSyntaxError(glob, "dangling escape")
            out.append(re.escape(segment[index + 1]))
            index += 2
        else:
            out.append(re.escape(char))
            index += 1
    return "".join(out)


def _translate_class(glob: str, segment: str, start: int) -> tuple[str, int]:
    index = start + 1
    negate = index < len(segment) and segment[index] in "!^"
    if negate:
        index += 1
    content_start = index
    # A leading ']' is a literal member of the class.
    if index < len(segment) and segment[index] == "]":
        index += 1
    while index < len(segment) and segment[index] != "]":
        index += 1
    if index >= len(segment):
        raise GlobSyntaxError(glob, "unclosed character class")
    content = segment[content_start:index]
    if not content:
        raise GlobSyntaxError(glob, "empty character class")

    escaped = content.replace("\\", "\\\\").replace("[", "\\[")
    if escaped.startswith("]"):
        escaped = "\\" + escaped
    if negate:
        return (f"[^/{escaped}]", index + 1)
    if escaped.startswith("^"):
        escaped = "\\" + escaped
    return (f"[{escaped}]", index + 1)


def _translate_braces(glob: str, segment: str, start: int) -> tuple[str, int]:
    alternatives: list[str] = []
    current: list[str] = []
    index = start + 1
    while index < len(segment):
        char = segment[index]
        if char == "\\":
            if index + 1 >= len(segment):
                raise GlobSyntaxError(glob, "dangling escape")
            current.append(segment[index : index + 2])
            index += 2
            continue
        if char == "{":
            raise GlobSyntaxError(glob, "nested '{' is not supported")
        if char == ",":
            alternatives.append("".join(current))
            current = []
        elif char == "}":
            alternatives.append("".join(current))
            translated = [
                _translate_segment(glob, item, in_braces=True) for item in alternatives
            ]
            return ("(?:" + "|".join(translated) + ")", index + 1)
        else:
            current.append(char)
        index += 1
    raise GlobSyntaxError(glob, "unclosed '{'")
