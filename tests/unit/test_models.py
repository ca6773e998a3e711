"""Unit tests for core data models."""

import pytest
from pydantic import ValidationError

from helm_updater.core.models import FileUpdate, HelmDependency, RepoType, normalize_repo_url


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://charts.bitnami.com/bitnami", "https://charts.bitnami.com/bitnami"),
        ("https://charts.bitnami.com/bitnami/", "https://charts.bitnami.com/bitnami"),
        (" https://charts.bitnami.com/bitnami// ", "https://charts.bitnami.com/bitnami"),
        ("https://example.com/charts/index.yaml", "https://example.com/charts"),
        ("oci://ghcr.io/org/charts", "oci://ghcr.io/org/charts"),
    ],
)
def test_normalize_repo_url(url: str, expected: str) -> None:
    """Test repository URLs normalize to one cache key."""
    assert normalize_repo_url(url) == expected


def test_registry_key(dependency_factory) -> None:
    """Test the registry key joins normalized URL and chart name."""
    dep = dependency_factory(repo_url="https://charts.bitnami.com/bitnami/", chart_name="redis")

    assert dep.registry_key == "https://charts.bitnami.com/bitnami/redis"


def test_dependency_is_hashable_and_frozen(dependency_factory) -> None:
    """Test dependencies can be deduplicated and are immutable."""
    dep = dependency_factory()

    assert len({dep, dependency_factory()}) == 1
    with pytest.raises(ValidationError):
        dep.chart_name = "other"


def test_dependency_requires_version_path() -> None:
    """Test construction fails without a version path."""
    with pytest.raises(ValidationError):
        HelmDependency(
            manifest_path="x.yaml",
            document_index=0,
            chart_name="nginx",
            repo_url="https://charts.example.com",
            repo_type=RepoType.HELM,
            current_version="1.0.0",
        )


def test_file_update_has_changes() -> None:
    """Test has_changes compares original and rewritten text."""
    assert FileUpdate(path="a.yaml", original_content="a", updated_content="b").has_changes
    assert not FileUpdate(path="a.yaml", original_content="a", updated_content="a").has_changes
