"""Pytest configuration and shared fixtures."""

import asyncio
from collections import Counter
from typing import Any

import pytest

from helm_updater.core.config import UpdaterConfig
from helm_updater.core.models import ChartVersionInfo, HelmDependency, HelmIndex, RepoType
from helm_updater.interfaces.exceptions import RegistryClientError
from helm_updater.interfaces.registry_client import RegistryClient


class FakeRegistryClient(RegistryClient):
    """In-memory registry client that counts fetches.

    Args:
        helm_indexes: repo URL -> {chart name -> [versions]}
        oci_tags: (repo URL, chart name) -> [tags]
        failing: repo URLs or ``"<repo>/<chart>"`` keys that raise RegistryClientError
        delay: Seconds each fetch sleeps, to widen race windows
    """

    def __init__(
        self,
        helm_indexes: dict[str, dict[str, list[str]]] | None = None,
        oci_tags: dict[tuple[str, str], list[str]] | None = None,
        failing: set[str] | None = None,
        delay: float = 0,
    ):
        self.helm_indexes = helm_indexes or {}
        self.oci_tags = oci_tags or {}
        self.failing = failing or set()
        self.delay = delay
        self.helm_calls: Counter[str] = Counter()
        self.oci_calls: Counter[tuple[str, str]] = Counter()
        self.closed = False
        self.in_flight = 0
        self.peak_in_flight = 0

    async def fetch_helm_index(self, repo_url: str) -> HelmIndex:
        self.helm_calls[repo_url] += 1
        await self._wait()
        if repo_url in self.failing:
            raise RegistryClientError(f"Registry returned HTTP 500 for {repo_url}/index.yaml", url=repo_url, status_code=500)
        entries = self.helm_indexes.get(repo_url, {})
        return HelmIndex(
            api_version="v1",
            entries={
                chart: [ChartVersionInfo(version=v) for v in versions] for chart, versions in entries.items()
            },
        )

    async def fetch_oci_tags(self, repo_url: str, chart_name: str) -> list[str]:
        self.oci_calls[(repo_url, chart_name)] += 1
        await self._wait()
        if f"{repo_url}/{chart_name}" in self.failing:
            raise RegistryClientError(f"Registry returned HTTP 404 for {chart_name}", url=repo_url, status_code=404)
        return list(self.oci_tags.get((repo_url, chart_name), []))

    async def _wait(self) -> None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True

    @property
    def total_calls(self) -> int:
        return sum(self.helm_calls.values()) + sum(self.oci_calls.values())


def make_dependency(**overrides: Any) -> HelmDependency:
    """Build a HelmDependency with bitnami/nginx defaults."""
    values: dict[str, Any] = {
        "manifest_path": "apps/nginx.yaml",
        "document_index": 0,
        "chart_name": "nginx",
        "repo_url": "https://charts.bitnami.com/bitnami",
        "repo_type": RepoType.HELM,
        "current_version": "15.9.0",
        "version_path": ("spec", "source", "targetRevision"),
    }
    values.update(overrides)
    return HelmDependency(**values)


@pytest.fixture
def dependency_factory():
    """Provide a factory for HelmDependency objects."""
    return make_dependency


@pytest.fixture
def registry_factory():
    """Provide the FakeRegistryClient class for tests needing custom registries."""
    return FakeRegistryClient


@pytest.fixture
def default_config() -> UpdaterConfig:
    """Provide a configuration with all defaults."""
    return UpdaterConfig()


@pytest.fixture
def bitnami_registry() -> FakeRegistryClient:
    """Provide a fake registry hosting the bitnami repository."""
    return FakeRegistryClient(
        helm_indexes={
            "https://charts.bitnami.com/bitnami": {
                "nginx": ["15.9.0", "15.9.1", "16.0.0"],
                "postgresql": ["12.5.0", "12.5.6", "13.0.0"],
                "redis": ["18.0.0", "18.1.0"],
            }
        }
    )


@pytest.fixture
def nginx_application() -> str:
    """Provide an Application manifest referencing bitnami/nginx."""
    return """# Nginx ingress for the public site
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: nginx
  namespace: argocd
spec:
  project: default
  source:
    repoURL: https://charts.bitnami.com/bitnami
    chart: nginx
    targetRevision: 15.9.0  # pinned after incident review
    helm:
      releaseName: my-nginx
  destination:
    server: https://kubernetes.default.svc
    namespace: web
"""


@pytest.fixture
def multi_source_application() -> str:
    """Provide an Application mixing chart sources with a git values source."""
    return """apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: platform
spec:
  sources:
    - repoURL: https://charts.bitnami.com/bitnami
      chart: postgresql
      targetRevision: "12.5.0"
    - repoURL: https://github.com/example/platform-values.git
      targetRevision: main
      ref: values
    - repoURL: oci://ghcr.io/example/charts
      chart: api
      targetRevision: '2.1.0'
      helm:
        valueFiles:
          - $values/api/values.yaml
  destination:
    server: https://kubernetes.default.svc
"""


@pytest.fixture
def application_set() -> str:
    """Provide an ApplicationSet with a templated destination."""
    return """apiVersion: argoproj.io/v1alpha1
kind: ApplicationSet
metadata:
  name: redis
spec:
  generators:
    - list:
        elements:
          - cluster: staging
          - cluster: production
  template:
    metadata:
      name: '{{cluster}}-redis'
    spec:
      project: default
      source:
        repoURL: https://charts.bitnami.com/bitnami
        chart: redis
        targetRevision: 18.0.0
        helm:
          values: |
            # inline values, not a version
            targetRevision: 18.0.0
            architecture: standalone
      destination:
        name: '{{cluster}}'
        namespace: cache
"""


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
