"""Endpoint and model profile registry backed by the settings document."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional, Protocol

from .constants import MAX_ENDPOINTS, MAX_MODELS
from .domain.profile import (
    PRESET_BASE_URLS,
    EndpointProfile,
    ModelProfile,
    ModelSelection,
    normalize_base_url,
    normalize_purpose,
)
from .errors import RegistryError
from .ids import new_id
from .logging import log_event
from .settings import SettingsStore
from .validation import (
    validate_add_model,
    validate_create_endpoint,
    validate_update_endpoint,
    validate_update_model,
)


class ProfileResolver(Protocol):
    """Read-only lookups used by the completion pipeline."""

    async def get_model(self, model_profile_id: str) -> Optional[ModelProfile]:
        ...

    async def get_endpoint(self, endpoint_id: str) -> Optional[EndpointProfile]:
        ...


class SecretRemover(Protocol):
    def delete(self, endpoint_id: str) -> None:
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _models(data: dict[str, Any]) -> list[ModelProfile]:
    return [ModelProfile.from_dict(raw) for raw in data.get("modelProfiles") or []]


def _endpoints(data: dict[str, Any]) -> list[EndpointProfile]:
    return [EndpointProfile.from_dict(raw) for raw in data.get("endpointProfiles") or []]


def _promote_next_default(models: list[ModelProfile], *, excluding: str) -> None:
    """Hand the chat default flag to the first remaining chat model."""
    for model in models:
        if model.id != excluding and model.purpose == "chat":
            model.is_default = True
            model.updated_at = _now_ms()
            return


def _clear_selection(data: dict[str, Any], removed_ids: set[str]) -> None:
    selection = ModelSelection.from_dict(data.get("modelSelection"))
    data["modelSelection"] = ModelSelection(
        voice_model_id=None if selection.voice_model_id in removed_ids else selection.voice_model_id,
        image_model_id=None if selection.image_model_id in removed_ids else selection.image_model_id,
    ).to_dict()


class ProfileRegistry:
    """CRUD over endpoint/model profiles; implements ``ProfileResolver``."""

    def __init__(self, settings: SettingsStore, secrets: SecretRemover | None = None):
        self._settings = settings
        self._secrets = secrets

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def list_endpoints(self) -> list[EndpointProfile]:
        return _endpoints(await self._settings.read())

    async def list_models(self) -> list[ModelProfile]:
        return _models(await self._settings.read())

    async def get_endpoint(self, endpoint_id: str) -> Optional[EndpointProfile]:
        for endpoint in await self.list_endpoints():
            if endpoint.id == endpoint_id:
                return endpoint
        return None

    async def get_model(self, model_profile_id: str) -> Optional[ModelProfile]:
        for model in await self.list_models():
            if model.id == model_profile_id:
                return model
        return None

    async def get_default_model(self) -> Optional[ModelProfile]:
        for model in await self.list_models():
            if model.purpose == "chat" and model.is_default:
                return model
        return None

    async def get_model_selection(self) -> ModelSelection:
        data = await self._settings.read()
        return ModelSelection.from_dict(data.get("modelSelection"))

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def create_endpoint(
        self, name: str, preset: str, base_url: str | None = None
    ) -> EndpointProfile:
        error = validate_create_endpoint(name, preset, base_url)
        if error:
            raise RegistryError(error)

        def _apply(data: dict[str, Any]) -> EndpointProfile:
            endpoints = _endpoints(data)
            if len(endpoints) >= MAX_ENDPOINTS:
                raise RegistryError(
                    f"Maximum {MAX_ENDPOINTS} providers allowed. Remove one to add another."
                )
            now = _now_ms()
            resolved_url = (
                normalize_base_url(base_url)
                if base_url and base_url.strip()
                else PRESET_BASE_URLS.get(preset, "")
            )
            endpoint = EndpointProfile(
                id=new_id(),
                name=name.strip(),
                preset=preset,
                base_url=resolved_url,
                created_at=now,
                updated_at=now,
            )
            endpoints.append(endpoint)
            data["endpointProfiles"] = [e.to_dict() for e in endpoints]
            return endpoint

        endpoint = await self._settings.update(_apply)
        log_event("endpoint_created", level=logging.INFO, endpoint_id=endpoint.id, preset=preset)
        return endpoint

    async def update_endpoint(self, endpoint_id: str, **patch: Any) -> EndpointProfile:
        error = validate_update_endpoint(patch)
        if error:
            raise RegistryError(error)

        def _apply(data: dict[str, Any]) -> EndpointProfile:
            endpoints = _endpoints(data)
            existing = next((e for e in endpoints if e.id == endpoint_id), None)
            if existing is None:
                raise RegistryError("Endpoint not found")
            if "name" in patch:
                existing.name = patch["name"].strip()
            if "preset" in patch:
                existing.preset = patch["preset"]
            if "base_url" in patch:
                existing.base_url = normalize_base_url(patch["base_url"])
            existing.updated_at = _now_ms()
            data["endpointProfiles"] = [e.to_dict() for e in endpoints]
            return existing

        return await self._settings.update(_apply)

    async def delete_endpoint(self, endpoint_id: str) -> None:
        """Remove an endpoint, its models, selections pointing at them, and its secret."""

        def _apply(data: dict[str, Any]) -> None:
            models = _models(data)
            removed_ids = {m.id for m in models if m.endpoint_profile_id == endpoint_id}
            data["endpointProfiles"] = [
                e.to_dict() for e in _endpoints(data) if e.id != endpoint_id
            ]
            data["modelProfiles"] = [m.to_dict() for m in models if m.id not in removed_ids]
            _clear_selection(data, removed_ids)

        await self._settings.update(_apply)
        if self._secrets is not None:
            await asyncio.to_thread(self._secrets.delete, endpoint_id)
        log_event("endpoint_deleted", level=logging.INFO, endpoint_id=endpoint_id)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def add_model(
        self,
        model_id: str,
        endpoint_profile_id: str,
        *,
        label: str | None = None,
        purpose: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelProfile:
        error = validate_add_model(
            model_id,
            endpoint_profile_id,
            label=label,
            purpose=purpose,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if error:
            raise RegistryError(error)

        def _apply(data: dict[str, Any]) -> ModelProfile:
            endpoint_key = endpoint_profile_id.strip()
            if not any(e.id == endpoint_key for e in _endpoints(data)):
                raise RegistryError("Endpoint not found")
            models = _models(data)
            if len(models) >= MAX_MODELS:
                raise RegistryError(
                    f"Maximum {MAX_MODELS} models allowed. Remove one to add another."
                )
            resolved_purpose = normalize_purpose(purpose)
            has_default = any(m.is_default for m in models if m.purpose == "chat")
            now = _now_ms()
            model = ModelProfile(
                id=new_id(),
                label=(label or "").strip() or model_id.strip(),
                model_id=model_id.strip(),
                endpoint_profile_id=endpoint_key,
                purpose=resolved_purpose,
                is_default=resolved_purpose == "chat" and not has_default,
                temperature=temperature,
                max_tokens=max_tokens,
                created_at=now,
                updated_at=now,
            )
            models.append(model)
            data["modelProfiles"] = [m.to_dict() for m in models]
            return model

        return await self._settings.update(_apply)

    async def update_model(self, model_profile_id: str, **patch: Any) -> ModelProfile:
        error = validate_update_model(patch)
        if error:
            raise RegistryError(error)

        def _apply(data: dict[str, Any]) -> ModelProfile:
            models = _models(data)
            existing = next((m for m in models if m.id == model_profile_id), None)
            if existing is None:
                raise RegistryError("Model not found")
            if "purpose" in patch and patch["purpose"] != existing.purpose and existing.is_default:
                existing.is_default = False
                _promote_next_default(models, excluding=existing.id)
            if "label" in patch:
                existing.label = patch["label"]
            if "model_id" in patch:
                existing.model_id = patch["model_id"].strip()
            if "temperature" in patch:
                existing.temperature = patch["temperature"]
            if "max_tokens" in patch:
                existing.max_tokens = patch["max_tokens"]
            if "purpose" in patch:
                existing.purpose = patch["purpose"]
            existing.updated_at = _now_ms()
            data["modelProfiles"] = [m.to_dict() for m in models]
            return existing

        return await self._settings.update(_apply)

    async def delete_model(self, model_profile_id: str) -> None:
        def _apply(data: dict[str, Any]) -> None:
            models = _models(data)
            removed = next((m for m in models if m.id == model_profile_id), None)
            remaining = [m for m in models if m.id != model_profile_id]
            if removed is not None and removed.is_default:
                _promote_next_default(remaining, excluding=model_profile_id)
            data["modelProfiles"] = [m.to_dict() for m in remaining]
            _clear_selection(data, {model_profile_id})

        await self._settings.update(_apply)

    async def set_default_model(self, model_profile_id: str) -> None:
        def _apply(data: dict[str, Any]) -> None:
            models = _models(data)
            target = next((m for m in models if m.id == model_profile_id), None)
            if target is None:
                raise RegistryError("Model not found")
            if target.purpose != "chat":
                raise RegistryError("Only chat models can be set as default")
            now = _now_ms()
            for model in models:
                if model.purpose == "chat":
                    model.is_default = model.id == model_profile_id
                    if model.is_default:
                        model.updated_at = now
            data["modelProfiles"] = [m.to_dict() for m in models]

        await self._settings.update(_apply)

    async def set_voice_model(self, model_profile_id: str | None) -> None:
        await self._set_selection("voice", model_profile_id)

    async def set_image_model(self, model_profile_id: str | None) -> None:
        await self._set_selection("image", model_profile_id)

    async def _set_selection(self, purpose: str, model_profile_id: str | None) -> None:
        def _apply(data: dict[str, Any]) -> None:
            selection = ModelSelection.from_dict(data.get("modelSelection"))
            if model_profile_id:
                model = next((m for m in _models(data) if m.id == model_profile_id), None)
                if model is None:
                    raise RegistryError("Model not found")
                if model.purpose != purpose:
                    raise RegistryError(f"Model must have purpose '{purpose}'")
            value = model_profile_id or None
            if purpose == "voice":
                selection = ModelSelection(voice_model_id=value, image_model_id=selection.image_model_id)
            else:
                selection = ModelSelection(voice_model_id=selection.voice_model_id, image_model_id=value)
            data["modelSelection"] = selection.to_dict()

        await self._settings.update(_apply)
