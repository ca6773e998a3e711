"""End-to-end update run: scan, extract, resolve, rewrite."""

from dataclasses import dataclass, field
from pathlib import Path

from helm_updater.core.config import UpdaterConfig
from helm_updater.core.exceptions import FileUpdateError
from helm_updater.core.models import FileUpdate, HelmDependency, VersionUpdate
from helm_updater.gitops.dependency_extractor import DependencyExtractor
from helm_updater.gitops.file_updater import FileUpdater
from helm_updater.gitops.manifest_scanner import ManifestScanner
from helm_updater.resolver.version_resolver import VersionResolver
from helm_updater.utils.logging import get_logger, log_error, log_stage, run_context

logger = get_logger(__name__)


@dataclass
class RunSummary:
    """Outcome of one update run."""

    files_scanned: int = 0
    charts_found: int = 0
    updates_detected: int = 0
    files_updated: int = 0
    dependencies: list[HelmDependency] = field(default_factory=list)
    updates: list[VersionUpdate] = field(default_factory=list)
    file_updates: list[FileUpdate] = field(default_factory=list)
    fetch_errors: dict[str, str] = field(default_factory=dict)


class UpdateOrchestrator:
    """Coordinates the pipeline stages without knowing their internals.

    Version control (branches, commits, pull requests) is left to the caller;
    the orchestrator at most writes the rewritten files back to disk.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        scanner: ManifestScanner | None = None,
        extractor: DependencyExtractor | None = None,
        resolver: VersionResolver | None = None,
        file_updater: FileUpdater | None = None,
    ):
        """Initialize update orchestrator.

        Args:
            config: Updater configuration
            scanner: Manifest scanner
            extractor: Dependency extractor
            resolver: Version resolver, built from config on first use when omitted
            file_updater: File updater
        """
        self.config = config
        self.scanner = scanner or ManifestScanner(config)
        self.extractor = extractor or DependencyExtractor()
        self._resolver = resolver
        self.file_updater = file_updater or FileUpdater()
        logger.debug("update_orchestrator_initialized")

    @property
    def resolver(self) -> VersionResolver:
        """Version resolver; scanning alone never opens a registry client."""
        if self._resolver is None:
            self._resolver = VersionResolver(self.config)
        return self._resolver

    def find_dependencies(self, root: str | Path = ".") -> tuple[int, list[HelmDependency]]:
        """Scan a tree and extract its chart dependencies.

        Returns:
            Number of manifest files and the dependencies found in them
        """
        manifests = self.scanner.scan(root)
        log_stage(logger, "scan", manifests=len(manifests))

        dependencies = self.extractor.extract_from_manifests(manifests)
        log_stage(logger, "extract", dependencies=len(dependencies))
        return len(manifests), dependencies

    async def run(self, root: str | Path = ".", write: bool = False) -> RunSummary:
        """Run the full pipeline.

        Args:
            root: Repository root to scan
            write: Write rewritten files to disk (dry run otherwise)

        Returns:
            Run summary
        """
        with run_context(root=str(root), write=write):
            return await self._run(root, write)

    async def _run(self, root: str | Path, write: bool) -> RunSummary:
        logger.info("update_run_started")
        summary = RunSummary()

        summary.files_scanned, summary.dependencies = self.find_dependencies(root)
        summary.charts_found = len(summary.dependencies)
        if not summary.dependencies:
            logger.info("no_dependencies_found")
            return summary

        summary.updates = await self.resolver.check_for_updates(summary.dependencies)
        summary.updates_detected = len(summary.updates)
        summary.fetch_errors = dict(self.resolver.fetch_errors)
        log_stage(logger, "resolve", updates=summary.updates_detected, failures=len(summary.fetch_errors))

        if not summary.updates:
            return summary

        summary.file_updates = await self.file_updater.update_manifests(summary.updates)

        if write:
            for file_update in summary.file_updates:
                try:
                    self.file_updater.write(file_update)
                except FileUpdateError as e:
                    log_error(logger, e, operation="write_manifest", path=file_update.path)
                    continue
                summary.files_updated += 1
        log_stage(logger, "update", files=len(summary.file_updates), written=summary.files_updated)

        logger.info(
            "update_run_complete",
            files_scanned=summary.files_scanned,
            charts_found=summary.charts_found,
            updates_detected=summary.updates_detected,
            files_updated=summary.files_updated,
        )
        return summary
