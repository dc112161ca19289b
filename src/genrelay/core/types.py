"""Core data types shared by the normalizer, invoker, and materializer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class MediaKind(str, Enum):
    """Kind of media a request produces."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class GenerationRequest:
    """A caller's generation request, before normalization.

    ``subject_id`` is the character the media belongs to; over HTTP it is sent
    as ``characterId``.  ``raw_parameters`` is untrusted client input.
    """

    kind: MediaKind
    prompt: str | None
    user_id: str | None
    subject_id: str | None
    image: str | None = None
    raw_parameters: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Provider results.  ``resolve_output`` turns arbitrary provider output into
# one of the first two; ``ProviderInvoker.submit`` produces the third.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteUrl:
    url: str


@dataclass(frozen=True)
class Immediate:
    data: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class Pending:
    job_id: str


ResolvedOutput = Union[RemoteUrl, Immediate]


@dataclass(frozen=True)
class StoredArtifact:
    """Media written to storage; the storage backend owns the bytes."""

    storage_path: str
    public_url: str
    content_type: str


@dataclass(frozen=True)
class PendingJob:
    """Metadata needed to route a provider callback back to a storage path."""

    job_id: str
    user_id: str
    subject_id: str
    original_parameters: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Handler outcomes, converted to JSON by the API layer.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationOutcome:
    kind: MediaKind
    artifact: StoredArtifact
    model: str
    generation_time: int
    used: dict[str, Any]


@dataclass(frozen=True)
class PendingOutcome:
    kind: MediaKind
    job: PendingJob
    model: str


@dataclass(frozen=True)
class CallbackOutcome:
    job_id: str | None
    status: str
    kind: MediaKind | None = None
    artifact: StoredArtifact | None = None

    @property
    def ignored(self) -> bool:
        return self.artifact is None
