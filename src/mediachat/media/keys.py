"""Storage key layout and namespace checks for uploaded media."""

from __future__ import annotations

import re
import secrets
import time
from urllib.parse import unquote, urlparse

from ..errors import ForbiddenError

MAX_FILENAME_LENGTH = 200
UPLOAD_ROOT = "uploads"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUNS = re.compile(r"\.{2,}")
_CONVERSATION_FILES = re.compile(r"^/?api/conversations/[^/]+/files/")


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name or "")
    cleaned = _DOT_RUNS.sub(".", cleaned)
    cleaned = cleaned[:MAX_FILENAME_LENGTH]
    if cleaned in ("", "."):
        return "file"
    return cleaned


def namespace_prefix(conversation_id: str) -> str:
    return f"{UPLOAD_ROOT}/{conversation_id}/"


def new_upload_key(conversation_id: str, filename: str) -> str:
    """uploads/<conversation>/<millis>-<random8hex>/<sanitized filename>"""
    stamp = int(time.time() * 1000)
    suffix = secrets.token_hex(4)
    return f"{namespace_prefix(conversation_id)}{stamp}-{suffix}/{sanitize_filename(filename)}"


def is_in_namespace(key: str, conversation_id: str) -> bool:
    if not key or not conversation_id:
        return False
    if any(segment in ("", ".", "..") for segment in key.split("/")):
        return False
    return key.startswith(namespace_prefix(conversation_id))


def require_namespace(key: str, conversation_id: str) -> str:
    if not is_in_namespace(key, conversation_id):
        raise ForbiddenError(f"key outside namespace: {key}")
    return key


def file_url(conversation_id: str, key: str) -> str:
    return f"/api/conversations/{conversation_id}/files/{key}"


def resolve_key(url: str | None, conversation_id: str) -> str | None:
    """Map a file part URL to a storage key in the conversation's namespace.

    Returns None for anything that cannot be mapped, including keys that
    belong to another conversation.
    """
    if not url or not isinstance(url, str):
        return None
    path = urlparse(url).path if "://" in url else url
    path = unquote(path)

    match = _CONVERSATION_FILES.match(path)
    if match:
        key = path[match.end() :]
    elif path.startswith("/files/"):
        key = path[len("/files/") :]
    elif path.startswith("files/"):
        key = path[len("files/") :]
    else:
        return None

    if not is_in_namespace(key, conversation_id):
        return None
    return key
