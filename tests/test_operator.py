"""Tests for llmwarden.controller.operator: kopf handlers, settings and fan-out."""

from datetime import timedelta

import kopf
import pytest

from fakes import NOW, access_obj
from llmwarden.api.conditions import FINALIZER
from llmwarden.config import ControllerConfig
from llmwarden.controller.operator import (
    RECONCILE_REQUESTED_ANNOTATION,
    build_memo,
    build_registry,
    configure_settings,
    grants_by_namespace,
    grants_by_provider,
    kick,
    namespace_event,
    owned_object_event,
    provider_changed,
    reconcile_access,
    rotation_due,
)
from llmwarden.kube.client import LLM_ACCESS, SECRET
from llmwarden.kube.errors import ApiError, ConflictError

KEY = ("team-a", "openai-access")


@pytest.fixture
def memo(client, ctx, controller_config, adapter) -> kopf.Memo:
    return build_memo(client, ctx, controller_config, adapter)


def kicked(client, key=KEY) -> str | None:
    annotations = client.stored(LLM_ACCESS, key[1], key[0])["metadata"].get("annotations") or {}
    return annotations.get(RECONCILE_REQUESTED_ANNOTATION)


def scheduled(next_rotation: str | None) -> dict:
    body = access_obj()
    if next_rotation is not None:
        body["status"] = {"nextRotation": next_rotation}
    return body


class TestSettings:
    def test_configure(self):
        settings = kopf.OperatorSettings()
        configure_settings(settings, ControllerConfig(max_concurrent_reconciles=7))
        assert settings.persistence.finalizer == FINALIZER
        assert settings.batching.worker_limit == 7
        assert settings.watching.server_timeout == 300
        assert isinstance(settings.persistence.progress_storage, kopf.AnnotationsProgressStorage)
        assert isinstance(settings.persistence.diffbase_storage, kopf.AnnotationsDiffBaseStorage)

    def test_registry_builds(self, adapter):
        assert isinstance(build_registry(ControllerConfig(), adapter), kopf.OperatorRegistry)


class TestIndices:
    def test_by_provider(self):
        spec = access_obj()["spec"]
        assert grants_by_provider(spec=spec, namespace="team-a", name="openai-access") == {"openai": KEY}

    def test_by_namespace(self):
        assert grants_by_namespace(namespace="team-a", name="openai-access") == {"team-a": KEY}


class TestAccessHandlers:
    @pytest.mark.asyncio
    async def test_reconcile_runs_a_pass(self, memo, seeded):
        await seeded.create(LLM_ACCESS, access_obj())
        await reconcile_access(namespace="team-a", name="openai-access", memo=memo)
        assert seeded.stored(SECRET, "openai-credentials", "team-a") is not None

    @pytest.mark.asyncio
    async def test_conflict_retries_quickly(self, memo, seeded):
        await seeded.create(LLM_ACCESS, access_obj())
        seeded.fail("update_status", LLM_ACCESS, ConflictError("LLMAccess team-a/openai-access was modified"))
        with pytest.raises(kopf.TemporaryError) as exc:
            await reconcile_access(namespace="team-a", name="openai-access", memo=memo)
        assert exc.value.delay == 1


class TestRotationTimer:
    def test_due_grant_is_kicked(self, memo):
        patch = kopf.Patch()
        rotation_due(body=scheduled("2026-10-18T11:00:00Z"), patch=patch, memo=memo)
        assert patch["metadata"]["annotations"][RECONCILE_REQUESTED_ANNOTATION] == NOW.isoformat()

    def test_exactly_due(self, memo):
        patch = kopf.Patch()
        rotation_due(body=scheduled("2026-10-18T12:00:00Z"), patch=patch, memo=memo)
        assert RECONCILE_REQUESTED_ANNOTATION in patch["metadata"]["annotations"]

    def test_not_yet_due(self, memo):
        patch = kopf.Patch()
        rotation_due(body=scheduled("2026-10-18T18:00:00Z"), patch=patch, memo=memo)
        assert not patch

    def test_no_rotation_scheduled(self, memo):
        patch = kopf.Patch()
        rotation_due(body=scheduled(None), patch=patch, memo=memo)
        assert not patch

    @pytest.mark.asyncio
    async def test_kick_leads_to_rotation(self, memo, seeded, clock):
        await seeded.create(LLM_ACCESS, access_obj(rotation="6h"))
        await reconcile_access(namespace="team-a", name="openai-access", memo=memo)
        clock.advance(timedelta(hours=6))

        patch = kopf.Patch()
        rotation_due(body=seeded.stored(LLM_ACCESS, "openai-access", "team-a"), patch=patch, memo=memo)
        assert patch

        await reconcile_access(namespace="team-a", name="openai-access", memo=memo)
        status = seeded.stored(LLM_ACCESS, "openai-access", "team-a")["status"]
        assert status["lastRotation"] == "2026-10-18T18:00:00Z"
        assert status["nextRotation"] == "2026-10-19T00:00:00Z"


class TestFanOut:
    @pytest.mark.asyncio
    async def test_provider_change_kicks_its_grants(self, memo, client):
        await client.create(LLM_ACCESS, access_obj())
        await client.create(LLM_ACCESS, access_obj(name="other", provider="anthropic"))
        index = {"openai": [KEY], "anthropic": [("team-a", "other")]}

        await provider_changed(name="openai", memo=memo, grants_by_provider=index)

        assert kicked(client) == NOW.isoformat()
        assert kicked(client, ("team-a", "other")) is None

    @pytest.mark.asyncio
    async def test_unreferenced_provider_kicks_nothing(self, memo, client):
        await provider_changed(name="openai", memo=memo, grants_by_provider={})
        assert client.writes == []

    @pytest.mark.asyncio
    async def test_namespace_modification(self, memo, client):
        await client.create(LLM_ACCESS, access_obj())
        index = {"team-a": [KEY]}

        await namespace_event(event={"type": "ADDED"}, name="team-a", memo=memo, grants_by_namespace=index)
        assert kicked(client) is None

        await namespace_event(event={"type": "MODIFIED"}, name="team-a", memo=memo, grants_by_namespace=index)
        assert kicked(client) == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_owned_secret_kicks_controller(self, memo, client):
        access = await client.create(LLM_ACCESS, access_obj())
        secret = {
            "metadata": {
                "name": "openai-credentials",
                "namespace": "team-a",
                "ownerReferences": [
                    {
                        "apiVersion": LLM_ACCESS.api_version,
                        "kind": LLM_ACCESS.kind,
                        "name": "openai-access",
                        "uid": access["metadata"]["uid"],
                        "controller": True,
                    }
                ],
            }
        }

        await owned_object_event(event={"type": "ADDED"}, body=secret, namespace="team-a", memo=memo)
        assert kicked(client) is None

        await owned_object_event(event={"type": "DELETED"}, body=secret, namespace="team-a", memo=memo)
        assert kicked(client) == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_foreign_owner_is_ignored(self, memo, client):
        await client.create(LLM_ACCESS, access_obj())
        secret = {
            "metadata": {
                "name": "openai-credentials",
                "namespace": "team-a",
                "ownerReferences": [
                    {"apiVersion": "apps/v1", "kind": "Deployment", "name": "openai-access", "uid": "d", "controller": True}
                ],
            }
        }
        await owned_object_event(event={"type": "MODIFIED"}, body=secret, namespace="team-a", memo=memo)
        assert kicked(client) is None

    @pytest.mark.asyncio
    async def test_kick_skips_missing_and_failing_grants(self, memo, client, caplog):
        await kick(memo, [("team-a", "gone")])
        client.fail("patch", LLM_ACCESS, ApiError("forbidden", status=403))
        await kick(memo, [KEY])
        assert "Failed to requeue LLMAccess team-a/openai-access" in caplog.text
