"""Provider output-shape resolution and file extension inference.

Providers are inconsistent about what a finished prediction's ``output`` looks
like.  Depending on the model and client it can be:

- a plain URL string,
- a list of outputs (batch models, even when ``num_outputs`` is 1),
- a file object exposing ``url`` (a method or an attribute),
- raw bytes.

:func:`resolve_output` is the single place that probes these shapes.  It
returns a :class:`~genrelay.core.types.RemoteUrl` or
:class:`~genrelay.core.types.Immediate`, or raises
:class:`~genrelay.core.errors.UnrecognizedOutputShape` with a diagnostic
payload describing what it saw.  It never raises anything else for
unexpected input.
"""

from __future__ import annotations

import logging
from typing import Any

from genrelay.core.errors import UnrecognizedOutputShape
from genrelay.core.types import Immediate, MediaKind, RemoteUrl, ResolvedOutput

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPES: dict[MediaKind, str] = {
    MediaKind.IMAGE: "image/webp",
    MediaKind.VIDEO: "video/mp4",
}

DEFAULT_EXTENSIONS: dict[MediaKind, str] = {
    MediaKind.IMAGE: "webp",
    MediaKind.VIDEO: "mp4",
}

# Checked in order against the lower-cased content type.  "jpeg" and "jpg"
# both map to "jpg".
_IMAGE_EXTENSIONS: tuple[tuple[str, str], ...] = (
    ("png", "png"),
    ("jpeg", "jpg"),
    ("jpg", "jpg"),
    ("webp", "webp"),
)

_VIDEO_EXTENSIONS: tuple[tuple[str, str], ...] = (
    ("mp4", "mp4"),
    ("webm", "webm"),
    ("quicktime", "mov"),
)

_PREFERRED_FORMATS = frozenset({"png", "jpg", "jpeg", "webp", "mp4", "webm", "mov"})

_MAX_DEPTH = 8


def _looks_like_url(value: str) -> bool:
    lowered = value.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def _resolve(output: Any, checks: dict[str, Any], depth: int) -> ResolvedOutput | None:
    # (0) Already resolved.
    if isinstance(output, (RemoteUrl, Immediate)):
        return output

    # (1) Plain URL string.
    if isinstance(output, str):
        checks["is_string"] = True
        if _looks_like_url(output):
            checks["string_is_url"] = True
            return RemoteUrl(output.strip())
        checks["string_is_url"] = False
        return None

    # (2) List of outputs: the first one wins.
    if isinstance(output, (list, tuple)):
        checks["is_sequence"] = True
        checks["sequence_length"] = len(output)
        if not output or depth >= _MAX_DEPTH:
            return None
        return _resolve(output[0], checks, depth + 1)

    # (3) File-like object exposing a URL.
    url_attr = getattr(output, "url", None)
    if url_attr is not None and not isinstance(output, (bytes, bytearray, memoryview)):
        checks["has_url"] = True
        try:
            url = url_attr() if callable(url_attr) else url_attr
        except Exception as exc:
            checks["url_error"] = f"{type(exc).__name__}: {exc}"
            return None
        url = str(url) if url is not None else ""
        if _looks_like_url(url):
            return RemoteUrl(url.strip())
        checks["url_value_is_url"] = False
        return None

    # (4) Raw binary.
    if isinstance(output, (bytes, bytearray, memoryview)):
        checks["is_binary"] = True
        content_type = getattr(output, "content_type", None)
        return Immediate(bytes(output), content_type if isinstance(content_type, str) else None)

    return None


def resolve_output(output: Any) -> ResolvedOutput:
    """Resolve a provider output into a URL to download or bytes to store.

    Shapes are tried in a fixed order: URL string, list (first element,
    recursively), object with a ``url`` accessor, raw bytes.

    Args:
        output: Whatever the provider returned as the prediction output.

    Returns:
        :class:`RemoteUrl` or :class:`Immediate`.  Resolving an already
        resolved value returns it unchanged.

    Raises:
        UnrecognizedOutputShape: If no shape matched.  ``debug`` carries the
            observed type and the outcome of each shape check.
    """
    checks: dict[str, Any] = {}
    resolved = _resolve(output, checks, 0)
    if resolved is not None:
        return resolved

    debug = {"typeofOutput": type(output).__name__, "checks": checks}
    logger.warning("Unrecognized provider output shape: %s", debug)
    raise UnrecognizedOutputShape("Unexpected model output", debug=debug)


def extension_for(
    content_type: str | None,
    kind: MediaKind,
    preferred: str | None = None,
) -> str:
    """Pick a file extension for stored media.

    Args:
        content_type: Content type reported by the media host, if any.
        kind: Media kind, which decides the fallback extension.
        preferred: Output format the caller explicitly asked the model for.
            When it is a known format it wins over the content type.

    Returns:
        Extension without the leading dot.
    """
    if preferred:
        candidate = preferred.strip().lower().lstrip(".")
        if candidate in _PREFERRED_FORMATS:
            return "jpg" if candidate == "jpeg" else candidate

    lowered = (content_type or "").lower()
    table = _IMAGE_EXTENSIONS if kind is MediaKind.IMAGE else _VIDEO_EXTENSIONS
    for needle, ext in table:
        if needle in lowered:
            return ext
    return DEFAULT_EXTENSIONS[kind]
