"""Input normalization for provider calls.

Turns an untrusted :class:`~genrelay.core.types.GenerationRequest` into the
input object sent to the provider, following the model's
:class:`~genrelay.core.model_specs.ModelInputSpec`:

1. Legacy aliases are renamed to their current names.
2. Keys outside the allow-list, and ``None`` values, are dropped.
3. Restricted parameters outside their accepted values fall back to the default.
4. The surviving values are merged over the model's defaults.
5. ``prompt`` (and, for video, the start image) is overlaid last so a client
   can never omit or replace it through ``input``.

Unknown keys are dropped silently: clients send extra fields for models the
relay is not configured to use, and that must keep working.
"""

from __future__ import annotations

import logging
from typing import Any

from genrelay.core.errors import InvalidRequest
from genrelay.core.model_specs import ModelInputSpec
from genrelay.core.types import GenerationRequest, MediaKind

logger = logging.getLogger(__name__)

# Keys that are part of the request itself rather than model parameters.
_RESERVED_KEYS = frozenset({"prompt", "_meta"})


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_request(request: GenerationRequest) -> None:
    """Check the fields every request needs before any external call.

    Raises:
        InvalidRequest: If prompt, user id, or character id is missing, or a
            video request carries no source image.
    """
    missing = [
        name
        for name, value in (
            ("prompt", request.prompt),
            ("userId", request.user_id),
            ("characterId", request.subject_id),
        )
        if _is_blank(value)
    ]
    if missing:
        raise InvalidRequest(
            "prompt, userId, characterId required",
            debug={"missing": missing},
        )
    if request.kind is MediaKind.VIDEO and _is_blank(request.image):
        raise InvalidRequest("image required for video generation")


def normalize_input(
    request: GenerationRequest,
    spec: ModelInputSpec,
    runtime_defaults: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the provider input for ``request`` under ``spec``.

    Args:
        request: The caller's request.
        spec: Input spec of the target model.
        runtime_defaults: Defaults only known at runtime (e.g. the safety
            checker flag).  Keys outside the allow-list are ignored.

    Returns:
        A fresh dictionary ready to send as the provider input.

    Raises:
        InvalidRequest: See :func:`validate_request`.
    """
    validate_request(request)

    # --- Alias resolution --------------------------------------------------
    renamed: dict[str, Any] = {}
    raw = request.raw_parameters or {}
    for key, value in raw.items():
        target = spec.aliases.get(key, key)
        # An explicitly supplied current name wins over its legacy alias.
        if target != key and target in raw:
            continue
        renamed[target] = value

    # --- Allow-list filtering ----------------------------------------------
    permitted: dict[str, Any] = {}
    dropped: list[str] = []
    for key, value in renamed.items():
        if key in spec.permitted and key not in _RESERVED_KEYS and value is not None:
            permitted[key] = value
        else:
            dropped.append(key)
    if dropped:
        logger.debug("Dropped parameters for %s: %s", spec.model_id, sorted(dropped))

    # --- Restricted values -------------------------------------------------
    for key, accepted in spec.choices.items():
        if key in permitted and permitted[key] not in accepted:
            logger.debug(
                "Parameter %s=%r not accepted by %s, using default.",
                key,
                permitted[key],
                spec.model_id,
            )
            del permitted[key]

    # --- Defaults, then mandatory fields -----------------------------------
    normalized: dict[str, Any] = dict(spec.defaults)
    for key, value in (runtime_defaults or {}).items():
        if key in spec.permitted:
            normalized[key] = value
    normalized.update(permitted)

    normalized["prompt"] = request.prompt
    if request.kind is MediaKind.VIDEO and spec.start_image_field:
        normalized[spec.start_image_field] = request.image

    return normalized


def effective_parameters(normalized: dict[str, Any], spec: ModelInputSpec) -> dict[str, Any]:
    """Return the parameters echoed back to the caller as ``used``."""
    hidden = set(_RESERVED_KEYS)
    if spec.start_image_field:
        hidden.add(spec.start_image_field)
    return {key: value for key, value in normalized.items() if key not in hidden}
