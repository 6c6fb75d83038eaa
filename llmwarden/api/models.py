"""
Resource models for the llmwarden.io/v1alpha1 API.

LLMProvider (cluster scoped) declares an upstream LLM provider and how to
obtain its master credential. LLMAccess (namespaced) requests a derived
credential for the workloads in one namespace.

Models accept and emit the camelCase wire format. Unknown fields are kept
so a read-modify-write never drops data written by another client.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

GROUP = "llmwarden.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"


class ProviderType(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    AWS_BEDROCK = "aws-bedrock"
    AZURE_OPENAI = "azure-openai"
    GCP_VERTEXAI = "gcp-vertexai"
    CUSTOM = "custom"


class AuthType(StrEnum):
    API_KEY = "apiKey"
    EXTERNAL_SECRET = "externalSecret"
    WORKLOAD_IDENTITY = "workloadIdentity"


class RotationStrategy(StrEnum):
    PROVIDER_API = "providerAPI"
    RECREATE_SECRET = "recreateSecret"


class SecretStoreKind(StrEnum):
    SECRET_STORE = "SecretStore"
    CLUSTER_SECRET_STORE = "ClusterSecretStore"


class WireModel(BaseModel):
    """Base for every API model: camelCase aliases, unknown fields preserved."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ─── Shared types ────────────────────────────────────────────────────


class LabelSelectorRequirement(WireModel):
    key: str
    operator: str
    values: list[str] | None = None


class LabelSelector(WireModel):
    match_labels: dict[str, str] | None = None
    match_expressions: list[LabelSelectorRequirement] | None = None


class OwnerReference(WireModel):
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = None


class ObjectMeta(WireModel):
    name: str = ""
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = None
    generation: int | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    finalizers: list[str] | None = None
    owner_references: list[OwnerReference] | None = None


class Condition(WireModel):
    """A single status condition (metav1.Condition)."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None
    observed_generation: int | None = None


class ObjectReference(WireModel):
    kind: str = "Secret"
    namespace: str
    name: str


# ─── LLMProvider ─────────────────────────────────────────────────────


class SecretReference(WireModel):
    name: str
    namespace: str
    key: str


class RotationConfig(WireModel):
    enabled: bool = False
    interval: str | None = None
    strategy: str = RotationStrategy.PROVIDER_API


class APIKeyAuth(WireModel):
    secret_ref: SecretReference
    rotation: RotationConfig | None = None


class StoreReference(WireModel):
    name: str = ""
    kind: str = SecretStoreKind.SECRET_STORE


class RemoteReference(WireModel):
    key: str = ""
    property: str | None = None


class ExternalSecretAuth(WireModel):
    store: StoreReference
    remote_ref: RemoteReference
    refresh_interval: str | None = None


class AWSWorkloadIdentity(WireModel):
    role_arn: str
    region: str


class AzureWorkloadIdentity(WireModel):
    client_id: str
    tenant_id: str
    managed_identity_resource_id: str | None = None


class GCPWorkloadIdentity(WireModel):
    service_account_email: str
    project_id: str


class WorkloadIdentityAuth(WireModel):
    aws: AWSWorkloadIdentity | None = None
    azure: AzureWorkloadIdentity | None = None
    gcp: GCPWorkloadIdentity | None = None


class AuthConfig(WireModel):
    # Plain str so an unrecognized type still decodes and can be reported.
    type: str
    api_key: APIKeyAuth | None = None
    external_secret: ExternalSecretAuth | None = None
    workload_identity: WorkloadIdentityAuth | None = None


class RateLimitConfig(WireModel):
    requests_per_minute: int | None = None
    tokens_per_minute: int | None = None


class EndpointConfig(WireModel):
    base_url: str | None = Field(default=None, alias="baseURL")


class LLMProviderSpec(WireModel):
    provider: str
    auth: AuthConfig
    allowed_models: list[str] = Field(default_factory=list)
    rate_limit: RateLimitConfig | None = None
    namespace_selector: LabelSelector | None = None
    endpoint: EndpointConfig | None = None


class LLMProviderStatus(WireModel):
    conditions: list[Condition] = Field(default_factory=list)
    last_credential_check: datetime | None = None
    access_count: int | None = None


class LLMProvider(WireModel):
    api_version: str = API_VERSION
    kind: str = "LLMProvider"
    metadata: ObjectMeta
    spec: LLMProviderSpec
    status: LLMProviderStatus = Field(default_factory=LLMProviderStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def base_url(self) -> str:
        if self.spec.endpoint and self.spec.endpoint.base_url:
            return self.spec.endpoint.base_url
        return ""

    @property
    def rotation(self) -> RotationConfig | None:
        if self.spec.auth.api_key is not None:
            return self.spec.auth.api_key.rotation
        return None


# ─── LLMAccess ───────────────────────────────────────────────────────


class ProviderReference(WireModel):
    name: str = ""


class EnvVarMapping(WireModel):
    name: str
    secret_key: str


class VolumeInjection(WireModel):
    mount_path: str = ""
    read_only: bool = True


class InjectionConfig(WireModel):
    env: list[EnvVarMapping] = Field(default_factory=list)
    volume: VolumeInjection | None = None


class AccessRotationConfig(WireModel):
    interval: str | None = None


class LLMAccessSpec(WireModel):
    provider_ref: ProviderReference
    models: list[str] = Field(default_factory=list)
    secret_name: str = ""
    workload_selector: LabelSelector | None = None
    injection: InjectionConfig = Field(default_factory=InjectionConfig)
    rotation: AccessRotationConfig | None = None


class LLMAccessStatus(WireModel):
    conditions: list[Condition] = Field(default_factory=list)
    secret_ref: ObjectReference | None = None
    last_rotation: datetime | None = None
    next_rotation: datetime | None = None
    provisioned_models: list[str] | None = None


class LLMAccess(WireModel):
    api_version: str = API_VERSION
    kind: str = "LLMAccess"
    metadata: ObjectMeta
    spec: LLMAccessSpec
    status: LLMAccessStatus = Field(default_factory=LLMAccessStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    @property
    def rotation_override(self) -> str:
        if self.spec.rotation and self.spec.rotation.interval:
            return self.spec.rotation.interval
        return ""
