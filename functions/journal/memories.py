"""
Reconstruct memories from Cloudinary image metadata.

A memory has no row of its own: every image uploaded for it carries the same
``memory_id`` in its context, so a read groups images on that key.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

ROOT_FOLDER = "love-journal"
LEGACY_MEMORIES_FOLDER = f"{ROOT_FOLDER}/memories"
USERS_FOLDER = f"{ROOT_FOLDER}/users"
MEMORY_TAGS = ["memory", "love-journal"]
MAX_CONTEXT_TEXT_LENGTH = 255

MONTH_NAMES = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]


def with_prefix(path: str, prefix: str = "") -> str:
    return f"{prefix}/{path}" if prefix else path


def parse_context(context: Any) -> dict[str, str]:
    """
    Normalise Cloudinary context into a flat dict.

    Context arrives either as a pipe-delimited ``key=value|key=value`` string,
    as ``{"custom": {...}}`` or as an already flat mapping.
    """
    if not context:
        return {}
    if isinstance(context, str):
        parsed: dict[str, str] = {}
        for pair in context.split("|"):
            key, sep, value = pair.partition("=")
            if sep and key.strip() and value.strip():
                parsed[key.strip()] = value.strip()
        return parsed
    if isinstance(context, Mapping):
        custom = context.get("custom")
        if isinstance(custom, str):
            return parse_context(custom)
        source = custom if isinstance(custom, Mapping) else context
        return {
            str(k): v if isinstance(v, str) else str(v)
            for k, v in source.items()
            if v is not None and not isinstance(v, Mapping)
        }
    return {}


def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def memory_folder(date: datetime, user_id: Optional[str], prefix: str = "") -> str:
    if user_id:
        month = MONTH_NAMES[date.month - 1]
        path = f"{USERS_FOLDER}/{user_id}/{date.year}/{month}/memories"
    else:
        path = f"{LEGACY_MEMORIES_FOLDER}/{date.year}"
    return with_prefix(path, prefix)


def user_memories_prefix(user_id: Optional[str], prefix: str = "") -> str:
    if user_id:
        return with_prefix(f"{USERS_FOLDER}/{user_id}", prefix)
    return with_prefix(f"{LEGACY_MEMORIES_FOLDER}/", prefix)


def image_summary(resource: Mapping[str, Any], context: dict) -> dict:
    return {
        "public_id": resource.get("public_id"),
        "secure_url": resource.get("secure_url"),
        "width": resource.get("width"),
        "height": resource.get("height"),
        "format": resource.get("format"),
        "created_at": resource.get("created_at"),
        "tags": resource.get("tags") or [],
        "folder": resource.get("folder"),
        "context": context,
    }


def _sort_key(memory: dict) -> tuple[bool, datetime]:
    parsed = parse_date(memory.get("date"))
    return (parsed is not None, parsed or datetime.min.replace(tzinfo=timezone.utc))


def group_memories(
    resources: Iterable[Mapping[str, Any]], user_id: Optional[str] = None
) -> list[dict]:
    """Group images by ``memory_id``, newest memory first."""
    memories: dict[str, dict] = {}
    for resource in resources:
        context = parse_context(resource.get("context"))
        memory_id = context.get("memory_id")
        if not memory_id:
            continue
        if user_id and context.get("userId") != user_id:
            continue

        memory = memories.get(memory_id)
        if memory is None:
            memory = {
                "id": memory_id,
                "title": context.get("title") or "Untitled Memory",
                "location": context.get("location") or None,
                "text": context.get("memory_text") or "",
                "date": context.get("memory_date") or resource.get("created_at"),
                "images": [],
                "created_at": resource.get("created_at"),
                "tags": resource.get("tags") or [],
                "folder": resource.get("folder") or "memories",
            }
            memories[memory_id] = memory
        memory["images"].append(image_summary(resource, context))

    return sorted(memories.values(), key=_sort_key, reverse=True)


def merge_firestore_metadata(
    memories: list[dict], docs: Mapping[str, Mapping[str, Any]]
) -> int:
    """Prefer Firestore's full title/location/text/date over the truncated context."""
    merged = 0
    for memory in memories:
        data = docs.get(memory["id"])
        if not data:
            continue
        for key in ("title", "location", "text", "date"):
            if data.get(key):
                memory[key] = data[key]
        merged += 1
    return merged
