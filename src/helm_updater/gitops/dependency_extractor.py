"""Helm chart reference extraction from ArgoCD manifests."""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from helm_updater.core.models import (
    HelmDependency,
    ManifestDocument,
    ManifestFile,
    RepoType,
    VersionPath,
)
from helm_updater.utils.logging import get_logger

logger = get_logger(__name__)

# Container registries that serve Helm charts as OCI artifacts
OCI_REGISTRY_HOSTS = (
    "registry-1.docker.io",
    "docker.io",
    "ghcr.io",
    "gcr.io",
    "registry.gitlab.com",
    "quay.io",
    "public.ecr.aws",
    "azurecr.io",
)

VERSION_FIELD = "targetRevision"


def detect_repo_type(repo_url: str) -> RepoType:
    """Classify a repository URL as a Helm repository or an OCI registry.

    Args:
        repo_url: Repository URL from a source

    Returns:
        RepoType.OCI for ``oci://`` URLs and known container registries,
        RepoType.HELM otherwise
    """
    url = repo_url.strip().lower()
    if url.startswith("oci://"):
        return RepoType.OCI
    if any(host in url for host in OCI_REGISTRY_HOSTS):
        return RepoType.OCI
    return RepoType.HELM


def split_oci_chart(repo_url: str) -> tuple[str, str] | None:
    """Split an OCI URL into the registry location and the trailing chart name.

    ``oci://ghcr.io/org/charts/app`` becomes ``("oci://ghcr.io/org/charts", "app")``.

    Returns:
        ``(repo_url, chart_name)``, or None if the URL has no path segment
    """
    url = re.split(r"[?#]", repo_url.strip(), maxsplit=1)[0].rstrip("/")
    scheme_match = re.match(r"^(oci|https?)://", url)
    scheme = scheme_match.group(0) if scheme_match else ""
    location = url[len(scheme):]

    head, sep, chart = location.rpartition("/")
    if not sep or not head or not chart:
        return None
    return f"{scheme}{head}", chart


def _scalar_text(value: Any) -> str | None:
    """Render a YAML scalar as text; booleans and containers are not versions."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


class DependencyExtractor:
    """Extract Helm chart dependencies from ArgoCD Applications and ApplicationSets.

    Extraction never raises on malformed input: anything that does not look
    like a chart source is skipped.
    """

    def extract(
        self,
        document: ManifestDocument | Mapping[str, Any],
        manifest_path: str,
        document_index: int = 0,
    ) -> list[HelmDependency]:
        """Extract every chart dependency from one manifest document.

        Args:
            document: Parsed manifest document
            manifest_path: Path of the file the document came from
            document_index: Position of the document in its YAML stream

        Returns:
            Dependencies in source order, empty for other kinds
        """
        raw = document.raw if isinstance(document, ManifestDocument) else document
        if not isinstance(raw, Mapping):
            return []

        kind = raw.get("kind")
        if kind == "Application":
            return self.extract_from_application(raw, manifest_path, document_index)
        if kind == "ApplicationSet":
            return self.extract_from_application_set(raw, manifest_path, document_index)
        return []

    def extract_from_application(
        self, document: Mapping[str, Any], manifest_path: str, document_index: int = 0
    ) -> list[HelmDependency]:
        """Extract dependencies from an Application (``spec.source`` / ``spec.sources``)."""
        spec = document.get("spec") if isinstance(document, Mapping) else None
        return self._extract_sources(spec, ("spec",), manifest_path, document_index)

    def extract_from_application_set(
        self, document: Mapping[str, Any], manifest_path: str, document_index: int = 0
    ) -> list[HelmDependency]:
        """Extract dependencies from an ApplicationSet template (``spec.template.spec``)."""
        spec = document.get("spec") if isinstance(document, Mapping) else None
        template = spec.get("template") if isinstance(spec, Mapping) else None
        template_spec = template.get("spec") if isinstance(template, Mapping) else None
        return self._extract_sources(
            template_spec, ("spec", "template", "spec"), manifest_path, document_index
        )

    def extract_from_manifests(self, files: Iterable[ManifestFile]) -> list[HelmDependency]:
        """Extract dependencies from every document of every manifest file.

        Args:
            files: Scanned manifest files

        Returns:
            All dependencies, ordered by file then document then source
        """
        dependencies: list[HelmDependency] = []
        file_count = 0
        for manifest in files:
            file_count += 1
            for document in manifest.documents:
                found = self.extract(document, manifest.path, document.index)
                if found:
                    logger.debug(
                        "dependencies_extracted",
                        manifest_path=manifest.path,
                        document_index=document.index,
                        count=len(found),
                    )
                dependencies.extend(found)

        logger.info("extraction_complete", files=file_count, dependencies=len(dependencies))
        return dependencies

    def _extract_sources(
        self,
        spec: Any,
        base_path: VersionPath,
        manifest_path: str,
        document_index: int,
    ) -> list[HelmDependency]:
        if not isinstance(spec, Mapping):
            return []

        dependencies: list[HelmDependency] = []

        source = spec.get("source")
        if isinstance(source, Mapping):
            dependency = self._parse_source(source, (*base_path, "source"), manifest_path, document_index)
            if dependency:
                dependencies.append(dependency)

        sources = spec.get("sources")
        if isinstance(sources, list):
            for index, item in enumerate(sources):
                if not isinstance(item, Mapping):
                    continue
                dependency = self._parse_source(
                    item, (*base_path, "sources", index), manifest_path, document_index
                )
                if dependency:
                    dependencies.append(dependency)

        return dependencies

    def _parse_source(
        self,
        source: Mapping[str, Any],
        source_path: VersionPath,
        manifest_path: str,
        document_index: int,
    ) -> HelmDependency | None:
        repo_url = _scalar_text(source.get("repoURL"))
        version = _scalar_text(source.get(VERSION_FIELD))
        if not repo_url or not version:
            return None

        repo_type = detect_repo_type(repo_url)
        chart_name = _scalar_text(source.get("chart"))

        if not chart_name:
            # Git sources carry a path instead of a chart
            if repo_type != RepoType.OCI:
                return None
            split = split_oci_chart(repo_url)
            if split is None:
                return None
            repo_url, chart_name = split

        return HelmDependency(
            manifest_path=manifest_path,
            document_index=document_index,
            chart_name=chart_name,
            repo_url=repo_url,
            repo_type=repo_type,
            current_version=version,
            version_path=(*source_path, VERSION_FIELD),
        )
