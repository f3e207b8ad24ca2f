"""JSON parsing helpers for model output."""

from __future__ import annotations

import re

FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)
CLOSERS = {"{": "}", "[": "]"}


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = FENCE_RE.match(stripped)
    if match is None:
        return stripped
    return match.group("body").strip()


def extract_first_json_value(text: str) -> str:
    """
    Extract the first top-level JSON object or array from text.
    This is a fallback for models that wrap JSON in extra text.
    """
    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        raise ValueError("No JSON object or array found in model output.")
    start = min(starts)
    opener = text[start]
    closer = CLOSERS[opener]

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == "\"":
                in_string = False
        else:
            if ch == "\"":
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]

    raise ValueError("Unbalanced JSON value in model output.")
