"""Text, hashing, time and loose-JSON helpers."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from loguru import logger

MessageInput = Union[str, Dict[str, Any], List[Dict[str, Any]], None]


def md5_hex(value: Optional[str]) -> str:
    """Return the MD5 hex digest of a string (empty string for None)."""
    if value is None:
        return ""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; returns None for anything unparseable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_message_list(messages: MessageInput) -> List[Dict[str, Any]]:
    if messages is None:
        return []
    if isinstance(messages, str):
        return [{"role": "user", "content": messages}]
    if isinstance(messages, dict):
        return [messages]
    return [m for m in messages if isinstance(m, dict)]


def normalize_input(text: Optional[str], messages: MessageInput = None) -> str:
    """Collapse explicit text or role-tagged messages into one string.

    Explicit non-blank text wins. Otherwise each message with content becomes
    a ``role: content`` line.
    """
    if text is not None and text.strip():
        return text
    lines = []
    for message in _as_message_list(messages):
        role = str(message.get("role") or "").strip()
        content = str(message.get("content") or "").strip()
        if not content:
            continue
        lines.append(f"{role}: {content}" if role else content)
    return "\n".join(lines)


def parse_messages_for_facts(messages: MessageInput) -> str:
    """Render messages for fact extraction, skipping system turns."""
    out = []
    for message in _as_message_list(messages):
        role = str(message.get("role") or "")
        content = message.get("content")
        if role.lower() == "system":
            continue
        if content is None or not str(content).strip():
            continue
        out.append(f"{role}: {content}\n")
    return "".join(out)


def message_contents(messages: MessageInput) -> str:
    """Join the non-system message contents, one per line, without role tags."""
    lines = []
    for message in _as_message_list(messages):
        if str(message.get("role") or "").lower() == "system":
            continue
        content = str(message.get("content") or "").strip()
        if content:
            lines.append(content)
    return "\n".join(lines)


def remove_code_blocks(text: Optional[str]) -> str:
    """Strip a surrounding markdown code fence from a model response."""
    if text is None:
        return ""
    t = text.strip()
    if t.startswith("```"):
        first_newline = t.find("\n")
        if first_newline >= 0:
            t = t[first_newline + 1:]
        last_fence = t.rfind("```")
        if last_fence >= 0:
            t = t[:last_fence]
    return t.strip()


def extract_first_json_object(text: Optional[str]) -> str:
    """Return the first balanced ``{...}`` substring, or an empty string."""
    if not text:
        return ""
    start = -1
    depth = 0
    in_string = False
    escape = False
    for i, ch in enumerate(text):
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                return text[start:i + 1]
    return ""


def _try_parse_object(text: str) -> Optional[Dict[str, Any]]:
    if not text or not text.strip():
        return None
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_json_object_loose(raw: Optional[str]) -> Dict[str, Any]:
    """Parse a model response that should contain a JSON object.

    Handles code fences and leading/trailing chatter. Returns an empty dict
    when nothing parseable is found.
    """
    cleaned = remove_code_blocks(raw)
    parsed = _try_parse_object(cleaned)
    if parsed is not None:
        return parsed
    parsed = _try_parse_object(extract_first_json_object(cleaned))
    if parsed is not None:
        return parsed
    logger.debug(f"parse_json_object_loose: no JSON object in response of length {len(cleaned)}")
    return {}
