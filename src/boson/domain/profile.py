"""Typed endpoint/model profile records used at registry I/O boundaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

ENDPOINT_PRESETS = ("openai-compatible", "openrouter-compatible", "litellm", "custom")
MODEL_PURPOSES = ("chat", "voice", "image")

PRESET_BASE_URLS = {
    "openai-compatible": "https://api.openai.com/v1",
    "openrouter-compatible": "https://openrouter.ai/api/v1",
    "litellm": "http://localhost:4000",
    "custom": "",
}

_ENDPOINT_KEYS = {"id", "name", "preset", "baseUrl", "createdAt", "updatedAt"}
_MODEL_KEYS = {
    "id",
    "label",
    "modelId",
    "endpointProfileId",
    "purpose",
    "isDefault",
    "temperature",
    "maxTokens",
    "createdAt",
    "updatedAt",
}


def normalize_base_url(base_url: str) -> str:
    """Trim whitespace and a single trailing slash from *base_url*."""
    value = base_url.strip()
    if value.endswith("/"):
        value = value[:-1]
    return value


def normalize_purpose(purpose: Any) -> str:
    """Return a known purpose tag, defaulting to ``"chat"``."""
    return purpose if purpose in MODEL_PURPOSES else "chat"


@dataclass(slots=True)
class EndpointProfile:
    """Provider endpoint configuration; the secret lives in the credential store."""

    id: str
    name: str
    base_url: str
    preset: str = "custom"
    created_at: int | None = None
    updated_at: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def chat_completions_url(self) -> str:
        return f"{normalize_base_url(self.base_url)}/chat/completions"

    @property
    def models_url(self) -> str:
        return f"{normalize_base_url(self.base_url)}/models"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EndpointProfile:
        if not isinstance(raw, Mapping):
            raise ValueError("Endpoint profile must be a dictionary-like mapping")
        if "id" not in raw:
            raise ValueError("Endpoint profile missing required field: id")
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", "")),
            base_url=str(raw.get("baseUrl", "")),
            preset=str(raw.get("preset", "custom")),
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            extras={str(k): v for k, v in raw.items() if k not in _ENDPOINT_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "preset": self.preset,
            "baseUrl": self.base_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        payload.update(self.extras)
        return payload


@dataclass(slots=True)
class ModelProfile:
    """Model id plus sampling parameters bound to one endpoint."""

    id: str
    model_id: str
    endpoint_profile_id: str
    label: str = ""
    purpose: str = "chat"
    is_default: bool = False
    temperature: float | None = None
    max_tokens: int | None = None
    created_at: int | None = None
    updated_at: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> ModelProfile:
        if not isinstance(raw, Mapping):
            raise ValueError("Model profile must be a dictionary-like mapping")
        missing = [key for key in ("id", "modelId", "endpointProfileId") if key not in raw]
        if missing:
            raise ValueError(f"Model profile missing required fields: {', '.join(missing)}")

        temperature = raw.get("temperature")
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            temperature = None
        max_tokens = raw.get("maxTokens")
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            max_tokens = None

        return cls(
            id=str(raw["id"]),
            model_id=str(raw["modelId"]),
            endpoint_profile_id=str(raw["endpointProfileId"]),
            label=str(raw.get("label") or raw["modelId"]),
            purpose=normalize_purpose(raw.get("purpose")),
            is_default=bool(raw.get("isDefault", False)),
            temperature=temperature,
            max_tokens=max_tokens,
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            extras={str(k): v for k, v in raw.items() if k not in _MODEL_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "modelId": self.model_id,
            "endpointProfileId": self.endpoint_profile_id,
            "purpose": self.purpose,
            "isDefault": self.is_default,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        payload.update(self.extras)
        return payload


@dataclass(frozen=True, slots=True)
class ModelSelection:
    """Models picked for the non-chat purposes."""

    voice_model_id: str | None = None
    image_model_id: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ModelSelection:
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            voice_model_id=raw.get("voiceModelId") or None,
            image_model_id=raw.get("imageModelId") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"voiceModelId": self.voice_model_id, "imageModelId": self.image_model_id}
