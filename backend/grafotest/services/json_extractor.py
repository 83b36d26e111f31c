"""
Grafotest API — Structured Extractor
=====================================

What:  Recovers a JSON value from Gemini output that is not guaranteed to be
       clean JSON (prose around the payload, markdown fences, trailing notes).
How:   Two stages, in order:
       1. Parse the whole text. Well-behaved output returns here.
       2. Parse the slice from the first "{" through the last "}".
Who:   Called by AnalysisService for both analysis operations.

Known limitations (accepted behavior, covered by tests):
    - Two independent top-level objects ('{"a":1} {"b":2}') fail with
      PARSE_ERROR, because the slice spans both.
    - A "{" in prose before the payload widens the slice and fails with
      PARSE_ERROR.

Only standard JSON is accepted: NaN, Infinity and numbers that overflow a
double are parse failures: the value must be re-serializable as a response.

The extractor is pure: no logging, no retries, no shape validation.
"""

import json
import math
from typing import Any, List

from grafotest.exceptions import ExtractionError, ExtractionFailureReason


def assemble_text(fragments: List[str]) -> str:
    """Join upstream text fragments with newlines. No fragments gives ""."""
    return "\n".join(fragments)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if not math.isfinite(value):
        raise ValueError(f"{literal} overflows a double")
    return value


def _loads(text: str) -> Any:
    """json.loads limited to RFC 8259: no NaN / Infinity, no overflowing numbers."""
    return json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)


def extract_json(raw_text: str) -> Any:
    """
    Parse a JSON value out of raw model text.

    Args:
        raw_text: Text produced by the upstream model. May be empty.

    Returns:
        The parsed JSON value. Stage 1 may return any JSON type; stage 2
        always returns an object.

    Raises:
        ExtractionError: reason NO_JSON_FOUND when there is no "{" ... "}"
            pair, PARSE_ERROR when the brace-delimited slice is not JSON.
    """
    # JSONDecodeError is a ValueError subclass
    try:
        return _loads(raw_text)
    except ValueError:
        pass

    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ExtractionError(ExtractionFailureReason.NO_JSON_FOUND, raw_text)

    try:
        return _loads(raw_text[start:end + 1])
    except ValueError as e:
        raise ExtractionError(ExtractionFailureReason.PARSE_ERROR, raw_text) from e
