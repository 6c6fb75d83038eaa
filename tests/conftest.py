"""
Shared fixtures for the llmwarden test suite.

Everything runs against fakes.InMemoryClient and a fixed clock, so no test
needs a cluster.
"""

from __future__ import annotations

import pytest

from fakes import EventLog, FakeClock, InMemoryClient, namespace_obj, provider_obj, secret_obj
from llmwarden.config import ControllerConfig
from llmwarden.context import Context
from llmwarden.eso.v1beta1 import V1Beta1Adapter
from llmwarden.events import EventRecorder
from llmwarden.kube.client import LLM_PROVIDER, NAMESPACE, SECRET
from llmwarden.metrics import Metrics


# ─── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(clock) -> InMemoryClient:
    return InMemoryClient(clock)


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def ctx(events, metrics, clock) -> Context:
    return Context(metrics=metrics, recorder=EventRecorder(post=events.post), clock=clock)


@pytest.fixture
def controller_config() -> ControllerConfig:
    return ControllerConfig()


@pytest.fixture
def adapter() -> V1Beta1Adapter:
    return V1Beta1Adapter()


@pytest.fixture
async def seeded(client):
    """Master secret, openai provider and the team-a namespace."""
    await client.create(SECRET, secret_obj("openai-master", "llmwarden-system", {"api-key": "sk-123"}))
    await client.create(LLM_PROVIDER, provider_obj())
    await client.create(NAMESPACE, namespace_obj("team-a", {"llm-access": "enabled"}))
    return client
