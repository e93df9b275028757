"""
Decoding of JSON objects embedded in free-text LLM replies.

decode_json_object() never raises: it returns either Decoded (the parsed
object) or DecodeFailure (the raw text and a reason). Callers branch on the
result type.
"""

import json
from dataclasses import dataclass


@dataclass(frozen=True)
class Decoded:
    payload: dict


@dataclass(frozen=True)
class DecodeFailure:
    raw: str
    reason: str


DecodeResult = Decoded | DecodeFailure


def clean_json_response(response: str) -> str:
    """Strip surrounding whitespace and markdown code fences."""
    response = response.strip()
    if response.startswith("```json"):
        response = response[7:]
    elif response.startswith("```"):
        response = response[3:]
    if response.endswith("```"):
        response = response[:-3]
    return response.strip()


def extract_json_block(text: str) -> str | None:
    """Return the first balanced top-level {...} block, ignoring braces in strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def decode_json_object(text: str | None) -> DecodeResult:
    if not text:
        return DecodeFailure(raw=text or "", reason="empty reply")

    block = extract_json_block(clean_json_response(text))
    if block is None:
        return DecodeFailure(raw=text, reason="no JSON object found")

    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        return DecodeFailure(raw=text, reason=f"invalid JSON: {e}")

    if not isinstance(payload, dict):
        return DecodeFailure(raw=text, reason="JSON value is not an object")
    return Decoded(payload=payload)
