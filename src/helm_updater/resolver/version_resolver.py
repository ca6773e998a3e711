"""Version resolution against Helm repositories and OCI registries."""

import asyncio
from collections.abc import Iterable, Mapping

from helm_updater.clients.registry_client import HttpRegistryClient
from helm_updater.core.config import UpdaterConfig
from helm_updater.core.models import (
    CacheStats,
    ChartVersionInfo,
    HelmDependency,
    HelmIndex,
    RepoType,
    UpdateStrategy,
    VersionUpdate,
    normalize_repo_url,
)
from helm_updater.interfaces.registry_client import RegistryClient
from helm_updater.resolver.registry_cache import RegistryCache
from helm_updater.resolver.update_policy import UpdatePolicy, release_notes_url
from helm_updater.utils.logging import get_logger
from helm_updater.utils.version_parser import Exact, VersionParser, parse_version

logger = get_logger(__name__)

VersionMap = dict[str, list[ChartVersionInfo]]


def _select_key(version: str) -> tuple:
    return parse_version(version), version


class VersionResolver:
    """Resolve available chart versions and select updates.

    The resolver owns two caches that live as long as the instance:
    Helm repository indexes keyed by repository URL, and OCI tag listings
    keyed by ``<repository URL>/<chart>``. Concurrent lookups of the same
    uncached key share one fetch.
    """

    def __init__(
        self,
        config: UpdaterConfig | None = None,
        registry_client: RegistryClient | None = None,
        strategy: UpdateStrategy | str | None = None,
    ):
        """Initialize version resolver.

        Args:
            config: Updater configuration (defaults apply when omitted)
            registry_client: Registry client; an HttpRegistryClient is built from config if omitted
            strategy: Override for the configured update strategy
        """
        self.config = config or UpdaterConfig()
        self.client = registry_client or HttpRegistryClient.from_config(self.config)
        self.policy = UpdatePolicy(
            strategy if strategy is not None else self.config.update_strategy,
            self.config.ignore,
            self.config.groups,
        )
        self.max_concurrency = self.config.http.max_concurrency
        self.fetch_errors: dict[str, str] = {}
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None

        self._helm_cache: RegistryCache[HelmIndex] = RegistryCache("helm_index")
        self._oci_cache: RegistryCache[list[str]] = RegistryCache("oci_tags")

        logger.debug(
            "version_resolver_initialized",
            strategy=self.policy.strategy.value,
            max_concurrency=self.max_concurrency,
        )

    async def resolve_versions(self, dependencies: Iterable[HelmDependency]) -> VersionMap:
        """Fetch available versions for a set of dependencies.

        Every chart of every fetched Helm index is included, not only the
        requested ones. Registries that fail are left out of the result and
        recorded in ``fetch_errors``.

        Args:
            dependencies: Dependencies to resolve

        Returns:
            Mapping of ``<repo_url>/<chart>`` to available versions
        """
        helm_repos: set[str] = set()
        oci_charts: set[tuple[str, str]] = set()
        for dependency in dependencies:
            repo_url = normalize_repo_url(dependency.repo_url)
            if dependency.repo_type == RepoType.OCI:
                oci_charts.add((repo_url, dependency.chart_name))
            else:
                helm_repos.add(repo_url)

        helm_order = sorted(helm_repos)
        oci_order = sorted(oci_charts)

        results = await asyncio.gather(
            *(self._fetch_helm_index(repo) for repo in helm_order),
            *(self._fetch_oci_tags(repo, chart) for repo, chart in oci_order),
        )
        helm_results = results[: len(helm_order)]
        oci_results = results[len(helm_order):]

        versions: VersionMap = {}
        for repo_url, index in zip(helm_order, helm_results):
            if index is None:
                continue
            for chart_name in sorted(index.entries):
                versions[f"{repo_url}/{chart_name}"] = list(index.entries[chart_name])

        for (repo_url, chart_name), tags in zip(oci_order, oci_results):
            if tags is None:
                continue
            versions[f"{repo_url}/{chart_name}"] = [ChartVersionInfo(version=tag) for tag in tags]

        logger.info(
            "versions_resolved",
            helm_repositories=len(helm_order),
            oci_charts=len(oci_order),
            charts=len(versions),
            failures=len(self.fetch_errors),
        )
        return versions

    def _fetch_limit(self) -> asyncio.Semaphore:
        """Return the fetch semaphore shared by every call on the running loop."""
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    async def _fetch_helm_index(self, repo_url: str) -> HelmIndex | None:
        async def fetch() -> HelmIndex:
            async with self._fetch_limit():
                return await self.client.fetch_helm_index(repo_url)

        try:
            index = await self._helm_cache.get_or_fetch(repo_url, fetch)
        except Exception as e:
            self._record_failure(repo_url, e)
            return None
        self.fetch_errors.pop(repo_url, None)
        return index

    async def _fetch_oci_tags(self, repo_url: str, chart_name: str) -> list[str] | None:
        key = f"{repo_url}/{chart_name}"

        async def fetch() -> list[str]:
            async with self._fetch_limit():
                return await self.client.fetch_oci_tags(repo_url, chart_name)

        try:
            tags = await self._oci_cache.get_or_fetch(key, fetch)
        except Exception as e:
            self._record_failure(key, e)
            return None
        self.fetch_errors.pop(key, None)
        return tags

    def _record_failure(self, key: str, error: Exception) -> None:
        self.fetch_errors[key] = str(error)
        logger.warning(
            "registry_fetch_failed",
            key=key,
            error_type=type(error).__name__,
            error=str(error),
        )

    async def check_for_updates(
        self,
        dependencies: Iterable[HelmDependency],
        available: Mapping[str, list[ChartVersionInfo]] | None = None,
    ) -> list[VersionUpdate]:
        """Select the best available update for each dependency.

        Args:
            dependencies: Dependencies to check
            available: Pre-resolved versions; resolved from the registries when omitted

        Returns:
            Updates in dependency order; dependencies without a usable
            candidate produce nothing
        """
        dependencies = list(dependencies)
        if available is None:
            available = await self.resolve_versions(dependencies)

        updates: list[VersionUpdate] = []
        for dependency in dependencies:
            try:
                update = self._select_update(dependency, available.get(dependency.registry_key, []))
            except Exception as e:
                logger.warning(
                    "update_selection_failed",
                    chart=dependency.chart_name,
                    manifest_path=dependency.manifest_path,
                    error=str(e),
                )
                continue
            if update is not None:
                updates.append(update)

        logger.info("updates_checked", dependencies=len(dependencies), updates=len(updates))
        return updates

    def _select_update(
        self, dependency: HelmDependency, available: list[ChartVersionInfo]
    ) -> VersionUpdate | None:
        chart = dependency.chart_name

        if self.policy.is_dependency_ignored(chart):
            logger.debug("dependency_ignored", chart=chart)
            return None

        constraint = VersionParser.parse(dependency.current_version)
        if not constraint.is_valid:
            logger.warning(
                "invalid_current_version",
                chart=chart,
                current_version=dependency.current_version,
                message=f"{dependency.current_version} is not a valid semver",
            )
            return None

        versions = list(dict.fromkeys(info.version for info in available))
        anchor = constraint.anchor

        if isinstance(constraint, Exact):
            current = constraint.version
            candidates = []
            for version in versions:
                parsed = parse_version(version)
                if parsed is None or parsed.compare(current) <= 0:
                    continue
                # Pre-releases are only offered to charts already on a pre-release of that release
                if parsed.prerelease and not (
                    current.prerelease and parsed.to_tuple()[:3] == current.to_tuple()[:3]
                ):
                    continue
                candidates.append(version)
        else:
            candidates = [
                version
                for version in VersionParser.filter_versions(versions, constraint)
                if anchor is None or parse_version(version).compare(anchor) > 0
            ]

        candidates = [v for v in candidates if self.policy.allows(chart, anchor, v)]
        if not candidates:
            logger.debug("no_update_available", chart=chart, current_version=dependency.current_version)
            return None

        new_version = max(candidates, key=_select_key)
        logger.info(
            "update_available",
            chart=chart,
            current_version=dependency.current_version,
            new_version=new_version,
        )
        return VersionUpdate(
            dependency=dependency,
            current_version=dependency.current_version,
            new_version=new_version,
            release_notes=release_notes_url(dependency.repo_url, dependency.repo_type, chart),
        )

    def group_updates(self, updates: Iterable[VersionUpdate]) -> dict[str, list[VersionUpdate]]:
        """Bucket updates by configured dependency group (see UpdatePolicy.group_updates)."""
        return self.policy.group_updates(updates)

    def get_cache_stats(self) -> CacheStats:
        """Get the number of distinct keys held by each registry cache."""
        return CacheStats(
            helm_index_cache_size=len(self._helm_cache),
            oci_tags_cache_size=len(self._oci_cache),
        )

    def clear_cache(self) -> None:
        """Discard all cached registry data and recorded fetch errors."""
        self._helm_cache.clear()
        self._oci_cache.clear()
        self.fetch_errors.clear()
        logger.debug("registry_cache_cleared")

    async def close(self) -> None:
        """Close the registry client."""
        await self.client.close()
