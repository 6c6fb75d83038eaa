"""
External Secrets Operator integration seam.

The provisioner only ever builds an ExternalSecretSpec and reads a SyncStatus.
An Adapter turns an ExternalSecretSpec into the concrete ExternalSecret object of one ESO
API version and reads that version's status back. Supporting a new ESO
version means writing a new Adapter; nothing upstream changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum

from llmwarden.kube.client import ResourceKind


class SecretCreationPolicy(StrEnum):
    """How ESO manages the target Secret."""

    OWNER = "Owner"  # ESO creates the Secret and owns it
    ORPHAN = "Orphan"  # created without an owner reference
    MERGE = "Merge"  # merged into an existing Secret
    NONE = "None"  # no Secret; data only in the ExternalSecret status


@dataclass
class StoreRef:
    name: str
    kind: str = "SecretStore"


@dataclass
class RemoteRef:
    """Where a value lives in the external store."""

    key: str
    property: str = ""  # sub-field of a multi-value secret; empty = whole value
    version: str = ""  # empty = latest


@dataclass
class ExternalSecretData:
    secret_key: str
    remote_ref: RemoteRef


@dataclass
class ExternalSecretTarget:
    name: str
    creation_policy: SecretCreationPolicy = SecretCreationPolicy.OWNER


@dataclass
class ExternalSecretSpec:
    """Version-agnostic description of one ExternalSecret."""

    refresh_interval: str
    store_ref: StoreRef
    target: ExternalSecretTarget
    data: list[ExternalSecretData] = field(default_factory=list)


@dataclass(frozen=True)
class SyncStatus:
    ready: bool
    message: str


class Adapter(ABC):
    """Translates ExternalSecretSpec to and from one ESO API version."""

    @property
    @abstractmethod
    def kind(self) -> ResourceKind:
        """The ExternalSecret resource this adapter targets."""

    @abstractmethod
    def build(
        self,
        namespace: str,
        name: str,
        labels: dict[str, str],
        spec: ExternalSecretSpec,
    ) -> dict:
        """Full ExternalSecret object for ``spec``. Owner references are the caller's job."""

    @abstractmethod
    def parse_sync_status(self, obj: dict | None) -> SyncStatus:
        """Best-effort sync status of an ExternalSecret. Never returns None."""
