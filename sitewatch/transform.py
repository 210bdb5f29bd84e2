"""
Transform chain – raw response bytes → canonical comparison text.

The chain is built from a small closed set of step kinds, composed in a fixed
order from whichever options a watch sets:

    jq | extract_body → pattern → replaces → remove_empty_lines → trim_whitespace

Every step is a pure ``str → str`` function. Identical input and options give
byte-identical output: nothing here reads the clock, the locale or unordered
containers.
"""
from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, List, NamedTuple

import jq
from bs4 import BeautifulSoup

from .config import TransformOptions
from .errors import TransformError


class StepKind(str, Enum):
    JQ = "jq"
    EXTRACT_BODY = "extract_body"
    PATTERN = "pattern"
    REPLACE = "replace"
    REMOVE_EMPTY_LINES = "remove_empty_lines"
    TRIM_WHITESPACE = "trim_whitespace"


class Step(NamedTuple):
    kind: StepKind
    arg: Any = None


# Elements dropped from an extracted body before serializing it back.
_NON_CONTENT_TAGS = ("script", "style", "noscript")


def decode(raw: bytes) -> str:
    """Decode response bytes as UTF-8, replacing undecodable sequences."""
    return raw.decode("utf-8", errors="replace")


def build_chain(options: TransformOptions) -> List[Step]:
    """Return the ordered steps selected by *options*."""
    steps: List[Step] = []
    if options.jq:
        steps.append(Step(StepKind.JQ, options.jq))
    elif options.extract_body:
        steps.append(Step(StepKind.EXTRACT_BODY))
    if options.pattern:
        steps.append(Step(StepKind.PATTERN, options.pattern))
    for rule in options.replaces:
        steps.append(Step(StepKind.REPLACE, (rule.pattern, rule.replace_with)))
    if options.remove_empty_lines:
        steps.append(Step(StepKind.REMOVE_EMPTY_LINES))
    if options.trim_whitespace:
        steps.append(Step(StepKind.TRIM_WHITESPACE))
    return steps


def _format_jq_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def apply_jq(text: str, query: str) -> str:
    """Run a jq program over JSON *text*, one output value per line."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TransformError(f"response is not valid JSON: {e}") from e
    try:
        outputs = jq.compile(query).input_value(data).all()
    except ValueError as e:
        raise TransformError(f"jq filter {query!r} failed: {e}") from e
    return "\n".join(_format_jq_value(v) for v in outputs)


def extract_body(text: str) -> str:
    """Keep only the ``<body>`` element of an HTML document."""
    soup = BeautifulSoup(text, "html.parser")
    body = soup.body
    if body is None:
        raise TransformError("no <body> element found in response")
    for tag in body.find_all(_NON_CONTENT_TAGS):
        tag.decompose()
    return str(body)


def extract_pattern(text: str, pattern: str) -> str:
    """All matches of *pattern*, one per line (first group if the pattern has one)."""
    regex = re.compile(pattern)
    matches = []
    for match in regex.finditer(text):
        value = match.group(1) if regex.groups else match.group(0)
        matches.append(value or "")
    return "\n".join(matches)


_TEMPLATE_REF_RE = re.compile(r"\$(?:(\$)|\{([A-Za-z0-9_]+)\}|([A-Za-z0-9_]+))")


def expand_template(match: re.Match, template: str) -> str:
    """Expand a replacement template against *match*.

    Groups are referenced as ``$1``, ``${1}`` or ``${name}``, and ``$$`` is a
    literal dollar sign. A reference to a group that does not exist or did not
    take part in the match expands to nothing. Backslashes are kept as is.
    """

    def _ref(ref: re.Match) -> str:
        if ref.group(1):
            return "$"
        name = ref.group(2) or ref.group(3)
        try:
            value = match.group(int(name) if name.isdigit() else name)
        except IndexError:
            return ""
        return value or ""

    return _TEMPLATE_REF_RE.sub(_ref, template)


def apply_step(step: Step, text: str) -> str:
    if step.kind is StepKind.JQ:
        return apply_jq(text, step.arg)
    if step.kind is StepKind.EXTRACT_BODY:
        return extract_body(text)
    if step.kind is StepKind.PATTERN:
        return extract_pattern(text, step.arg)
    if step.kind is StepKind.REPLACE:
        pattern, replacement = step.arg
        try:
            return re.sub(pattern, lambda m: expand_template(m, replacement), text)
        except re.error as e:
            raise TransformError(f"replace {pattern!r} -> {replacement!r} failed: {e}") from e
    if step.kind is StepKind.REMOVE_EMPTY_LINES:
        return "\n".join(line for line in text.splitlines() if line.strip())
    if step.kind is StepKind.TRIM_WHITESPACE:
        return "\n".join(line.strip() for line in text.splitlines())
    raise ValueError(f"unknown transform step {step.kind!r}")


def transform(raw: bytes, options: TransformOptions) -> str:
    """Turn raw fetched bytes into the normalized comparison string.

    Raises TransformError for malformed JSON, failing jq programs and
    documents without a body element.
    """
    text = decode(raw)
    for step in build_chain(options):
        text = apply_step(step, text)
    return text
