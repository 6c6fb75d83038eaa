"""Tests for llmwarden.api.models: wire format round trips."""

from fakes import access_obj, provider_obj
from llmwarden.api.models import AuthType, LLMAccess, LLMProvider


class TestLLMProvider:
    def test_camel_case_aliases(self):
        provider = LLMProvider.model_validate(
            provider_obj(allowed_models=["gpt-4o"], base_url="https://proxy.internal/v1")
        )
        assert provider.spec.auth.type == AuthType.API_KEY
        assert provider.spec.auth.api_key.secret_ref.key == "api-key"
        assert provider.spec.allowed_models == ["gpt-4o"]
        assert provider.base_url == "https://proxy.internal/v1"

        wire = provider.to_dict()
        assert wire["spec"]["allowedModels"] == ["gpt-4o"]
        assert wire["spec"]["endpoint"] == {"baseURL": "https://proxy.internal/v1"}
        assert wire["spec"]["auth"]["apiKey"]["secretRef"]["namespace"] == "llmwarden-system"

    def test_unknown_fields_preserved(self):
        obj = provider_obj()
        obj["spec"]["futureField"] = {"a": 1}
        obj["metadata"]["managedFields"] = [{"manager": "kubectl"}]
        wire = LLMProvider.model_validate(obj).to_dict()
        assert wire["spec"]["futureField"] == {"a": 1}
        assert wire["metadata"]["managedFields"] == [{"manager": "kubectl"}]

    def test_unknown_auth_type_still_decodes(self):
        provider = LLMProvider.model_validate(provider_obj(auth={"type": "magic"}))
        assert provider.spec.auth.type == "magic"

    def test_rotation_only_for_api_key(self):
        provider = LLMProvider.model_validate(provider_obj(rotation={"enabled": True, "interval": "24h"}))
        assert provider.rotation.interval == "24h"
        eso = LLMProvider.model_validate(
            provider_obj(auth={"type": "externalSecret", "externalSecret": {"store": {"name": "v"}, "remoteRef": {"key": "k"}}})
        )
        assert eso.rotation is None


class TestLLMAccess:
    def test_defaults(self):
        access = LLMAccess.model_validate(access_obj(volume={"mountPath": "/var/run/llm"}, env=[]))
        assert access.spec.injection.volume.read_only is True
        assert access.spec.models == []
        assert access.rotation_override == ""

    def test_status_serialization(self):
        obj = access_obj()
        obj["status"] = {
            "secretRef": {"kind": "Secret", "namespace": "team-a", "name": "openai-credentials"},
            "lastRotation": "2026-10-18T12:00:00Z",
        }
        wire = LLMAccess.model_validate(obj).status.to_dict()
        assert wire["secretRef"]["name"] == "openai-credentials"
        assert wire["lastRotation"] == "2026-10-18T12:00:00Z"
        assert "nextRotation" not in wire
