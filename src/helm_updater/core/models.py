"""Core data models for the Helm updater."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RepoType(str, Enum):
    """Chart repository type."""

    HELM = "helm"
    OCI = "oci"


class UpdateStrategy(str, Enum):
    """How far above the anchor version an update may go."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    ALL = "all"


class UpdateType(str, Enum):
    """Kind of version bump between two releases."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


VersionPath = tuple[str | int, ...]


class HelmDependency(BaseModel):
    """A Helm chart reference extracted from an ArgoCD manifest."""

    model_config = ConfigDict(frozen=True)

    manifest_path: str = Field(..., description="Path of the manifest file")
    document_index: int = Field(..., description="Position within a multi-document stream")
    chart_name: str = Field(..., description="Chart name (may contain '/' for OCI paths)")
    repo_url: str = Field(..., description="Helm repository or OCI registry URL")
    repo_type: RepoType = Field(..., description="Repository type")
    current_version: str = Field(..., description="Exact version or constraint expression")
    version_path: VersionPath = Field(
        ..., description="Field path from the document root to the version scalar"
    )

    @property
    def registry_key(self) -> str:
        """Key under which this chart's versions appear in a resolution map."""
        return f"{normalize_repo_url(self.repo_url)}/{self.chart_name}"


class ChartVersionInfo(BaseModel):
    """A chart version as reported by a registry."""

    model_config = ConfigDict(frozen=True)

    version: str
    app_version: str | None = None
    created: datetime | None = None
    digest: str | None = None


class HelmIndex(BaseModel):
    """Helm repository index (index.yaml)."""

    api_version: str = ""
    entries: dict[str, list[ChartVersionInfo]] = Field(default_factory=dict)


class VersionUpdate(BaseModel):
    """A selected version update for one dependency."""

    model_config = ConfigDict(frozen=True)

    dependency: HelmDependency
    current_version: str
    new_version: str
    release_notes: str | None = None


class FileUpdate(BaseModel):
    """Original and rewritten content of one manifest file."""

    model_config = ConfigDict(frozen=True)

    path: str
    original_content: str
    updated_content: str
    updates: tuple[VersionUpdate, ...] = ()

    @property
    def has_changes(self) -> bool:
        """Whether the rewritten content differs from the original."""
        return self.original_content != self.updated_content


class ManifestDocument(BaseModel):
    """A single parsed YAML document from a manifest file."""

    kind: str = ""
    api_version: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict)
    index: int = 0


class ManifestFile(BaseModel):
    """A manifest file holding one or more ArgoCD documents."""

    path: str
    content: str
    documents: list[ManifestDocument] = Field(default_factory=list)


class CacheStats(BaseModel):
    """Number of distinct registry cache keys held by a resolver."""

    helm_index_cache_size: int = 0
    oci_tags_cache_size: int = 0


def normalize_repo_url(repo_url: str) -> str:
    """Strip trailing slashes and a trailing ``index.yaml`` from a repository URL."""
    url = repo_url.strip().rstrip("/")
    if url.endswith("/index.yaml"):
        url = url[: -len("/index.yaml")]
    return url
