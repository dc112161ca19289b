"""Tests for genrelay.api.models - Pydantic request/response models.

Tests cover:
- Leniency of GenerateRequest (missing fields and extra keys accepted).
- Conversion into the core GenerationRequest.
- Response model serialisation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from genrelay.api.models import (
    CallbackPayload,
    CallbackResponse,
    GenerateRequest,
    PendingResponse,
)
from genrelay.core.types import MediaKind


class TestGenerateRequest:
    """Test GenerateRequest Pydantic model."""

    def test_empty_body_is_valid(self):
        """Required fields are checked by the normalizer, not by Pydantic."""
        req = GenerateRequest()
        assert req.type == "image"
        assert req.prompt is None
        assert req.input is None

    def test_extra_keys_ignored(self):
        req = GenerateRequest(prompt="p", userId="u1", characterId="c1", sessionToken="x")
        assert not hasattr(req, "sessionToken")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            GenerateRequest(type="audio")

    def test_to_generation_request(self):
        req = GenerateRequest(
            type="video",
            prompt="she waves",
            image="https://cdn.test/start.png",
            userId="u1",
            characterId="c1",
            input={"duration": 10},
        )

        request = req.to_generation_request()

        assert request.kind is MediaKind.VIDEO
        assert request.prompt == "she waves"
        assert request.image == "https://cdn.test/start.png"
        assert request.user_id == "u1"
        assert request.subject_id == "c1"
        assert request.raw_parameters == {"duration": 10}

    def test_missing_input_becomes_empty_dict(self):
        request = GenerateRequest(prompt="p").to_generation_request()
        assert request.raw_parameters == {}


class TestCallbackPayload:
    """Test the prediction webhook body."""

    def test_provider_fields_beyond_declared_ones_ignored(self):
        payload = CallbackPayload(
            id="p1",
            status="succeeded",
            output=["https://x.test/o.mp4"],
            input={"prompt": "p"},
            metrics={"predict_time": 12.3},
        )
        dumped = payload.model_dump()
        assert "metrics" not in dumped
        assert dumped["output"] == ["https://x.test/o.mp4"]


class TestResponses:
    """Test response model serialisation."""

    def test_pending_response_defaults(self):
        body = PendingResponse(predictionId="pred-1").model_dump()
        assert body == {"type": "video", "status": "processing", "predictionId": "pred-1"}

    def test_ignored_callback_response_excludes_empty_fields(self):
        body = CallbackResponse(ignored=True, status="processing", predictionId="p1")
        assert body.model_dump(exclude_none=True) == {
            "ok": True,
            "ignored": True,
            "status": "processing",
            "predictionId": "p1",
        }
