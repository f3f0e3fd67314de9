"""Decoding of model responses, with recovery for malformed output.

The agent is asked for a single JSON object:

    {"response": "...", "edits": [{"blockId": ..., "action": ...}], "hasMore": false}

Generated text regularly breaks that contract: code-fence wrapping,
invalid backslash escapes from LaTeX, raw newlines inside strings, or a
stream cut off mid-object. Recovery degrades step by step and never
raises; the worst case is the raw text shown as an unstructured answer.
"""

import json
import re
from typing import Any, Optional

from pydantic import ValidationError

from blockwise.models.edits import EditProposal
from blockwise.models.protocol import MalformedResponse, ParsedResponse, ValidResponse
from blockwise.services.exceptions import MalformedResponseError
from blockwise.utils.logging import get_logger

logger = get_logger(__name__)

ALL_CHANGES_APPLIED = "All changes applied."

VALID_ESCAPES = frozenset('"\\/bfnrtu')

_FENCE_START = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_FENCE_END = re.compile(r"\n?[ \t]*```$")
_RESPONSE_FIELD = re.compile(r'"response"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
_HAS_MORE_FIELD = re.compile(r'"hasMore"\s*:\s*(true|false)')
_EDITS_FIELD = re.compile(r'"edits"\s*:\s*\[')
_HEX4 = re.compile(r"[0-9a-fA-F]{4}")


def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` (or bare ```) wrapper around the text."""
    stripped = text.strip()
    stripped = _FENCE_START.sub("", stripped, count=1)
    stripped = _FENCE_END.sub("", stripped, count=1)
    return stripped.strip()


def find_object_end(text: str, start: int) -> Optional[int]:
    """
    Find the end of the JSON object opening at text[start].

    Braces inside strings (and escaped quotes) are ignored.

    Returns:
        Index just past the closing brace, or None if the object is
        never closed
    """
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
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
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_balanced_objects(text: str) -> list[str]:
    """
    Collect complete top-level {...} objects from the body of a JSON array.

    Scanning stops at the array's closing bracket. A trailing object that
    is cut off is dropped.
    """
    objects = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == "]":
            break
        if char == "{":
            end = find_object_end(text, index)
            if end is None:
                break
            objects.append(text[index:end])
            index = end
            continue
        if char == '"':
            # Stray string between objects; skip it whole
            index = _skip_string(text, index)
            continue
        index += 1
    return objects


def _skip_string(text: str, start: int) -> int:
    index = start + 1
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == '"':
            return index + 1
        index += 1
    return index


def fix_json_escapes(text: str) -> str:
    """
    Repair string contents so the text becomes valid JSON.

    Inside strings, valid escapes (\\" \\\\ \\/ \\b \\f \\n \\r \\t \\uXXXX) are
    kept; any other backslash is itself escaped, so "\\alpha" survives as a
    literal backslash. Raw control characters are escaped as well.
    """
    out = []
    in_string = False
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        if not in_string:
            out.append(char)
            if char == '"':
                in_string = True
            index += 1
            continue

        if char == "\\":
            following = text[index + 1] if index + 1 < length else ""
            if following and following in VALID_ESCAPES:
                if following == "u" and not _HEX4.fullmatch(text[index + 2:index + 6]):
                    out.append("\\\\")
                    index += 1
                    continue
                out.append(char + following)
                index += 2
                continue
            out.append("\\\\")
            index += 1
            continue

        if char == '"':
            in_string = False
            out.append(char)
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        elif char == "\t":
            out.append("\\t")
        elif ord(char) < 0x20:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
        index += 1

    return "".join(out)


def _loads(text: str) -> tuple[Any, bool]:
    """
    Decode JSON, repairing escapes on the second attempt.

    Returns:
        (decoded value, whether repair was needed)

    Raises:
        MalformedResponseError: If both attempts fail
    """
    try:
        return json.loads(text), False
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(fix_json_escapes(text)), True
    except json.JSONDecodeError as e:
        raise MalformedResponseError(text, f"Invalid JSON: {e.msg}") from e


def edit_from_object(data: Any) -> Optional[EditProposal]:
    """
    Build an EditProposal from one decoded edit object.

    Accepts "blockId" or "id" for the address. Returns None (and logs)
    for objects that do not validate.
    """
    if not isinstance(data, dict):
        return None

    replace_with = data.get("replaceWith", data.get("content"))
    candidate = {
        "block_id": data.get("blockId") or data.get("block_id") or data.get("id") or "",
        "action": data.get("action"),
        "replace_with": replace_with if isinstance(replace_with, str) else "",
        "target_block_id": data.get("targetBlockId") or data.get("target_block_id"),
        "description": str(data.get("description") or ""),
    }
    try:
        return EditProposal.model_validate(candidate)
    except ValidationError as e:
        logger.warning(
            "response_edit_invalid",
            edit=data,
            error=str(e),
        )
        return None


def _edits_from_list(items: Any) -> list[EditProposal]:
    if not isinstance(items, list):
        return []
    edits = []
    for item in items:
        edit = edit_from_object(item)
        if edit is not None:
            edits.append(edit)
    return edits


def _decode_string(body: str) -> str:
    try:
        value, _ = _loads(f'"{body}"')
    except MalformedResponseError:
        return body
    return value if isinstance(value, str) else body


def _recover_fields(text: str, raw: str, truncated: bool) -> ParsedResponse:
    """Regex recovery of response, edits and hasMore from broken JSON."""
    response_match = _RESPONSE_FIELD.search(text)
    response = _decode_string(response_match.group(1)) if response_match else None

    edits: list[EditProposal] = []
    edits_match = _EDITS_FIELD.search(text)
    if edits_match:
        for body in extract_balanced_objects(text[edits_match.end():]):
            try:
                decoded, _ = _loads(body)
            except MalformedResponseError:
                logger.debug("response_edit_unparseable", body=body)
                continue
            edit = edit_from_object(decoded)
            if edit is not None:
                edits.append(edit)

    if response is None and not edits:
        logger.warning("response_unrecoverable", raw_length=len(raw))
        return MalformedResponse(raw=raw.strip(), error="Could not extract a response")

    has_more_match = _HAS_MORE_FIELD.search(text)
    has_more = has_more_match.group(1) == "true" if has_more_match else truncated

    logger.info(
        "response_recovered",
        truncated=truncated,
        edit_count=len(edits),
        has_more=has_more,
    )
    return ValidResponse(
        response=response or "",
        edits=edits,
        has_more=has_more,
        recovered=True,
    )


def parse_agent_response(raw: str) -> ParsedResponse:
    """
    Decode agent output into a typed response.

    Args:
        raw: Complete model output

    Returns:
        ValidResponse (possibly recovered) or MalformedResponse carrying the
        raw text; never raises
    """
    text = strip_code_fences(raw)
    if not text:
        return ValidResponse(response=ALL_CHANGES_APPLIED)

    start = text.find("{")
    if start == -1:
        return MalformedResponse(raw=raw.strip(), error="No JSON object in response")

    end = find_object_end(text, start)
    if end is None:
        return _recover_fields(text[start:], raw, truncated=True)

    candidate = text[start:end]
    try:
        data, repaired = _loads(candidate)
    except MalformedResponseError:
        return _recover_fields(candidate, raw, truncated=False)

    if not isinstance(data, dict):
        return MalformedResponse(raw=raw.strip(), error="Response is not a JSON object")

    response = data.get("response", "")
    if repaired:
        logger.info("response_escapes_repaired")
    return ValidResponse(
        response=response if isinstance(response, str) else str(response),
        edits=_edits_from_list(data.get("edits")),
        has_more=data.get("hasMore") is True,
        recovered=repaired,
    )
