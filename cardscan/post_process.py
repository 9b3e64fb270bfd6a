"""Recover stats and a generated image from a remote chat-completion reply.

Providers disagree on where a generated image lives and whether the stats
come back as JSON or prose, so each known shape is a small matcher. Matchers
are tried in a fixed order and the first non-empty answer wins.
"""
import json
import re
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import ExtractedStats
from .utils import coerce_int, get_logger

LOGGER = get_logger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*?\"(?:health|attack|name)\"[\s\S]*?\}", re.IGNORECASE)
HEALTH_LABEL_PATTERN = re.compile(r"health\s*:?\s*(\d+)", re.IGNORECASE)
ATTACK_LABEL_PATTERN = re.compile(r"attack\s*:?\s*(\d+)", re.IGNORECASE)
NAME_LABEL_PATTERN = re.compile(r"name\s*:?\s*[\"']?([^\"'\n,}]+)[\"']?", re.IGNORECASE)
EMBEDDED_DATA_URL_PATTERN = re.compile(r"data:image/[^;]+;base64,[A-Za-z0-9+/=]+")

Reply = Dict[str, Any]
Message = Dict[str, Any]


def strip_markdown_fences(text: str) -> str:
    """Unwrap a reply the model put inside a ```json ... ``` code block."""
    text = text.strip()
    if text.startswith("```"):
        _, newline, body = text.partition("\n")
        text = body.strip() if newline else text
    return text[:-3].rstrip() if text.endswith("```") else text


def iter_messages(reply: Reply) -> Iterable[Message]:
    choices = reply.get("choices") if isinstance(reply, dict) else None
    for choice in choices or []:
        message = choice.get("message") if isinstance(choice, dict) else None
        if isinstance(message, dict):
            yield message


def message_text(message: Message) -> str:
    """Return the textual part of a message, joining multi-part content."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text") or "" for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


# ---------------------------------------------------------------------------
# Stats matchers: text -> ExtractedStats | None


def _lookup(data: Dict[str, Any], key: str) -> Any:
    for candidate, value in data.items():
        if str(candidate).lower() == key:
            return value
    return None


def stats_from_json(text: str) -> Optional[ExtractedStats]:
    match = JSON_OBJECT_PATTERN.search(strip_markdown_fences(text))
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        LOGGER.warning("Failed to parse JSON from content: %s", exc)
        return None
    if not isinstance(parsed, dict):
        return None

    name = _lookup(parsed, "name")
    stats = ExtractedStats(
        health=coerce_int(_lookup(parsed, "health")),
        attack=coerce_int(_lookup(parsed, "attack")),
        name=str(name).strip() if name else None,
    )
    return None if stats.is_empty() else stats


def stats_from_labels(text: str) -> Optional[ExtractedStats]:
    health = HEALTH_LABEL_PATTERN.search(text)
    attack = ATTACK_LABEL_PATTERN.search(text)
    if not health and not attack:
        return None
    name = NAME_LABEL_PATTERN.search(text)
    return ExtractedStats(
        health=int(health.group(1)) if health else None,
        attack=int(attack.group(1)) if attack else None,
        name=name.group(1).strip() if name else None,
    )


STATS_MATCHERS: List[Callable[[str], Optional[ExtractedStats]]] = [
    stats_from_json,
    stats_from_labels,
]


def find_stats(reply: Reply) -> Optional[ExtractedStats]:
    for message in iter_messages(reply):
        text = message_text(message)
        if not text:
            continue
        for matcher in STATS_MATCHERS:
            stats = matcher(text)
            if stats is not None:
                return stats
    return None


# ---------------------------------------------------------------------------
# Image matchers


def _is_data_image(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("data:image")


def _nested_url(entry: Dict[str, Any]) -> Optional[str]:
    image_url = entry.get("image_url")
    if isinstance(image_url, dict) and image_url.get("url"):
        return image_url["url"]
    return None


def image_from_images_list(message: Message) -> Optional[str]:
    images = message.get("images")
    if not isinstance(images, list):
        return None
    for entry in images:
        if not isinstance(entry, dict):
            continue
        if entry.get("type") == "image_url" and _nested_url(entry):
            return _nested_url(entry)
        if _is_data_image(entry.get("url")):
            return entry["url"]
    return None


def image_from_text_content(message: Message) -> Optional[str]:
    content = message.get("content")
    if not isinstance(content, str):
        return None
    if _is_data_image(content):
        return content
    embedded = EMBEDDED_DATA_URL_PATTERN.search(content)
    return embedded.group(0) if embedded else None


def _part_image_url(part: Dict[str, Any]) -> Optional[str]:
    if part.get("type") == "image_url":
        return _nested_url(part)
    return None


def _part_source(part: Dict[str, Any]) -> Optional[str]:
    source = part.get("source")
    if part.get("type") == "image" and isinstance(source, dict) and source.get("data"):
        mime = source.get("media_type") or "image/png"
        return f"data:{mime};base64,{source['data']}"
    return None


def _part_inline_data(part: Dict[str, Any]) -> Optional[str]:
    inline = part.get("inline_data") or part.get("inlineData")
    if isinstance(inline, dict) and inline.get("data"):
        mime = inline.get("mime_type") or inline.get("mimeType") or "image/png"
        return f"data:{mime};base64,{inline['data']}"
    return None


def _part_b64_json(part: Dict[str, Any]) -> Optional[str]:
    if part.get("b64_json"):
        return f"data:image/png;base64,{part['b64_json']}"
    return None


def _part_data_url(part: Dict[str, Any]) -> Optional[str]:
    return part["url"] if _is_data_image(part.get("url")) else None


PART_MATCHERS: List[Callable[[Dict[str, Any]], Optional[str]]] = [
    _part_image_url,
    _part_source,
    _part_inline_data,
    _part_b64_json,
    _part_data_url,
]


def image_from_content_parts(message: Message) -> Optional[str]:
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for part in content:
        if not isinstance(part, dict):
            continue
        for matcher in PART_MATCHERS:
            image = matcher(part)
            if image:
                return image
    return None


IMAGE_MATCHERS: List[Callable[[Message], Optional[str]]] = [
    image_from_images_list,
    image_from_text_content,
    image_from_content_parts,
]


def find_image(reply: Reply) -> Optional[str]:
    for message in iter_messages(reply):
        for matcher in IMAGE_MATCHERS:
            image = matcher(message)
            if image:
                LOGGER.debug("Image found via %s", matcher.__name__)
                return image
    LOGGER.debug("No image found in any known format")
    return None
