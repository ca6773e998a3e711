"""Registry client interface for chart version discovery."""

from abc import ABC, abstractmethod

from helm_updater.core.models import HelmIndex


class RegistryClient(ABC):
    """Abstract interface for chart registries.

    Two flavours of registry are supported:
    - classic Helm repositories, which publish a single index.yaml listing
      every chart and version they host
    - OCI registries, which only answer tag listings for one chart at a time
    """

    @abstractmethod
    async def fetch_helm_index(self, repo_url: str) -> HelmIndex:
        """Fetch and parse a Helm repository index.

        Args:
            repo_url: Helm repository URL (with or without a trailing index.yaml)

        Returns:
            Parsed repository index

        Raises:
            RegistryClientError: If the index cannot be fetched or parsed
        """

    @abstractmethod
    async def fetch_oci_tags(self, repo_url: str, chart_name: str) -> list[str]:
        """List the tags published for an OCI chart.

        Args:
            repo_url: OCI registry URL (``oci://`` prefix optional)
            chart_name: Chart repository name inside the registry

        Returns:
            Tags as reported by the registry (may include non-semver tags)

        Raises:
            RegistryClientError: If the tag list cannot be fetched or parsed
        """

    async def close(self) -> None:
        """Release any underlying connections."""
