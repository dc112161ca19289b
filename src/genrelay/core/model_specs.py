"""Per-model input specifications.

Each provider model accepts a different set of input fields.  Rather than
hard-coding an allow-list inside every request handler, the relay keeps one
:class:`ModelInputSpec` per supported (kind, model) pair in the
:data:`MODEL_SPECS` table.  Supporting a new model is a data change: add an
entry here and point ``GENRELAY_IMAGE_MODEL_ID`` / ``GENRELAY_VIDEO_MODEL_ID``
at it.

Spec fields
-----------
permitted
    Parameter names the model accepts.  Everything else a client sends is
    dropped by the normalizer.
aliases
    Legacy name -> current name.  Older clients sent ``guidance`` to models
    that expect ``guidance_scale``; the alias keeps them working.
defaults
    Values filled in when the client does not supply them.
choices
    Parameters restricted to a fixed set of values.  An out-of-range value is
    replaced by the default rather than rejected (flux-dev only accepts
    ``megapixels`` of ``"1"`` or ``"0.25"``).
start_image_field
    Video models only: the input key that receives the source image.
safety_field
    Optional input key whose default comes from the deployment's
    ``safety_disabled`` flag.

Usage
-----
::

    from genrelay.core.model_specs import get_model_spec

    spec = get_model_spec("black-forest-labs/flux-dev")
    print(sorted(spec.permitted))
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from genrelay.core.errors import UnknownModel
from genrelay.core.types import MediaKind


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ModelInputSpec:
    """Immutable description of the inputs a provider model accepts."""

    model_id: str
    kind: MediaKind
    permitted: frozenset[str]
    aliases: Mapping[str, str] = field(default_factory=dict)
    defaults: Mapping[str, Any] = field(default_factory=dict)
    choices: Mapping[str, tuple] = field(default_factory=dict)
    start_image_field: str | None = None
    safety_field: str | None = None

    def __post_init__(self) -> None:
        # Freeze the mappings so a spec shared across requests can't drift.
        object.__setattr__(self, "permitted", frozenset(self.permitted))
        object.__setattr__(self, "aliases", _frozen(self.aliases))
        object.__setattr__(self, "defaults", _frozen(self.defaults))
        object.__setattr__(self, "choices", _frozen(self.choices))

        unknown_defaults = set(self.defaults) - self.permitted
        if unknown_defaults:
            raise ValueError(
                f"{self.model_id}: defaults outside the allow-list: {sorted(unknown_defaults)}"
            )
        if self.kind is MediaKind.VIDEO and not self.start_image_field:
            raise ValueError(f"{self.model_id}: video specs need a start_image_field")


FLUX_DEV = ModelInputSpec(
    model_id="black-forest-labs/flux-dev",
    kind=MediaKind.IMAGE,
    permitted=frozenset(
        {
            "seed",
            "go_fast",
            "guidance",
            "megapixels",
            "num_outputs",
            "aspect_ratio",
            "output_format",
            "output_quality",
            "prompt_strength",
            "num_inference_steps",
            "disable_safety_checker",
        }
    ),
    aliases={"guidance_scale": "guidance", "steps": "num_inference_steps"},
    defaults={
        "aspect_ratio": "9:16",
        "go_fast": False,
        "guidance": 2.5,
        "megapixels": "1",
        "num_outputs": 1,
        "output_format": "webp",
        "output_quality": 100,
        "num_inference_steps": 50,
    },
    choices={"megapixels": ("1", "0.25")},
    safety_field="disable_safety_checker",
)

PRUNA_FLUX_DEV = ModelInputSpec(
    model_id=(
        "prunaai/flux.1-dev:"
        "b0306d92aa025bb747dc74162f3c27d6ed83798e08e5f8977adf3d859d0536a3"
    ),
    kind=MediaKind.IMAGE,
    permitted=frozenset(
        {
            "seed",
            "guidance",
            "image_size",
            "speed_mode",
            "aspect_ratio",
            "output_format",
            "output_quality",
            "num_inference_steps",
        }
    ),
    aliases={"guidance_scale": "guidance", "steps": "num_inference_steps"},
)

SEEDREAM_3 = ModelInputSpec(
    model_id="bytedance/seedream-3",
    kind=MediaKind.IMAGE,
    permitted=frozenset({"seed", "size", "width", "height", "aspect_ratio", "guidance_scale"}),
    aliases={"guidance": "guidance_scale"},
    defaults={"aspect_ratio": "9:16", "size": "regular", "guidance_scale": 2.5},
)

KLING_V21 = ModelInputSpec(
    model_id="kwaivgi/kling-v2.1",
    kind=MediaKind.VIDEO,
    permitted=frozenset({"mode", "duration", "negative_prompt"}),
    aliases={"length": "duration", "seconds": "duration", "negative": "negative_prompt"},
    defaults={"mode": "standard", "duration": 5, "negative_prompt": ""},
    choices={"mode": ("standard", "pro"), "duration": (5, 10)},
    start_image_field="start_image",
)

WAN_I2V_FAST = ModelInputSpec(
    model_id="wan-video/wan-2.2-i2v-fast",
    kind=MediaKind.VIDEO,
    permitted=frozenset(
        {"seed", "num_frames", "resolution", "frames_per_second", "go_fast", "sample_shift"}
    ),
    aliases={"fps": "frames_per_second", "frames": "num_frames"},
    defaults={"num_frames": 81, "resolution": "480p", "frames_per_second": 16, "go_fast": True},
    choices={"resolution": ("480p", "720p")},
    start_image_field="image",
)

MODEL_SPECS: Mapping[str, ModelInputSpec] = MappingProxyType(
    {
        spec.model_id: spec
        for spec in (FLUX_DEV, PRUNA_FLUX_DEV, SEEDREAM_3, KLING_V21, WAN_I2V_FAST)
    }
)


def get_model_spec(model_id: str) -> ModelInputSpec:
    """Return the input spec registered for ``model_id``.

    Raises:
        UnknownModel: If no spec is registered for the id.
    """
    try:
        return MODEL_SPECS[model_id]
    except KeyError:
        raise UnknownModel(f"No input spec registered for model: {model_id}") from None
