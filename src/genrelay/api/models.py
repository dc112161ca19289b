"""Pydantic request and response models for the generation relay API.

Request fields are deliberately lenient (all optional, extra keys ignored):
missing ``prompt`` / ``userId`` / ``characterId`` must produce the relay's own
400 ``{"error": ...}`` body from the normalizer rather than FastAPI's 422
validation payload.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``.
CallbackPayload
    Prediction webhook body for ``POST /api/generate/callback``.
GenerateResponse / PendingResponse / CallbackResponse
    Success bodies.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from genrelay.core.types import GenerationRequest, MediaKind


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        type: ``"image"`` (default) or ``"video"``.
        prompt: Text prompt.  Required.
        image: Source image URL for video generation.
        userId: Owner of the generated media.  Required.
        characterId: Character the media belongs to.  Required.
        input: Model parameters; filtered against the model's allow-list.
    """

    model_config = ConfigDict(extra="ignore")

    type: Literal["image", "video"] = Field(
        default="image",
        description="Kind of media to generate.",
    )
    prompt: str | None = Field(
        default=None,
        description="Text prompt (required).",
    )
    image: str | None = Field(
        default=None,
        description="Source image reference (video only).",
    )
    userId: str | None = Field(
        default=None,
        description="Owner of the generated media (required).",
    )
    characterId: str | None = Field(
        default=None,
        description="Character the media belongs to (required).",
    )
    input: dict[str, Any] | None = Field(
        default=None,
        description="Model parameters, filtered per model.",
    )

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            kind=MediaKind(self.type),
            prompt=self.prompt,
            user_id=self.userId,
            subject_id=self.characterId,
            image=self.image,
            raw_parameters=dict(self.input or {}),
        )


class CallbackPayload(BaseModel):
    """Prediction webhook body.

    Only the fields the relay reads are declared; the provider sends many more.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status: str | None = None
    output: Any = None
    input: dict[str, Any] | None = None
    error: Any = None


class GenerateResponse(BaseModel):
    type: Literal["image", "video"]
    path: str
    url: str
    generationTime: int | None = None
    model: str | None = None
    used: dict[str, Any] | None = None


class PendingResponse(BaseModel):
    type: Literal["video"] = "video"
    status: Literal["processing"] = "processing"
    predictionId: str


class CallbackResponse(BaseModel):
    ok: bool = True
    ignored: bool = False
    status: str
    predictionId: str | None = None
    type: Literal["image", "video"] | None = None
    path: str | None = None
    url: str | None = None
