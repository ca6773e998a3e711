"""In-place version rewriting for manifest files."""

import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable

import yaml
from yaml.nodes import ScalarNode

from helm_updater.core.exceptions import FileUpdateError, PathNotFoundError
from helm_updater.core.models import FileUpdate, VersionUpdate
from helm_updater.utils.logging import get_logger
from helm_updater.utils.yaml_nodes import compose_documents, find_scalar, replace_scalar

logger = get_logger(__name__)


def _read_file(path: str) -> str:
    # newline="" keeps CRLF line endings intact
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


class FileUpdater:
    """Rewrite version scalars in manifest text.

    Only the characters of the addressed scalar change. Comments, ordering,
    quoting, block scalars and template placeholders elsewhere in the file
    are left exactly as they were.
    """

    def __init__(self, read_file: Callable[[str], str] | None = None):
        """Initialize file updater.

        Args:
            read_file: Function returning a file's text (defaults to reading from disk)
        """
        self.read_file = read_file or _read_file

    async def update_manifests(self, updates: Iterable[VersionUpdate]) -> list[FileUpdate]:
        """Apply version updates to the files they belong to.

        Each file is read once. Updates whose path no longer resolves, or whose
        current value no longer matches, are skipped without affecting the
        others.

        Args:
            updates: Selected version updates

        Returns:
            One FileUpdate per changed file, in order of first appearance
        """
        by_path: dict[str, list[VersionUpdate]] = defaultdict(list)
        for update in updates:
            by_path[update.dependency.manifest_path].append(update)

        paths = list(by_path)
        contents = await asyncio.gather(
            *(asyncio.to_thread(self.read_file, path) for path in paths),
            return_exceptions=True,
        )

        file_updates: list[FileUpdate] = []
        for path, content in zip(paths, contents):
            if isinstance(content, BaseException):
                logger.error("manifest_read_failed", path=path, error=str(content))
                continue
            try:
                file_update = self.update_content(path, content, by_path[path])
            except FileUpdateError as e:
                logger.error("file_update_failed", path=path, error=str(e))
                continue
            if file_update is not None:
                file_updates.append(file_update)

        logger.info("manifests_updated", files=len(file_updates), updates=sum(len(f.updates) for f in file_updates))
        return file_updates

    def update_content(self, path: str, content: str, updates: list[VersionUpdate]) -> FileUpdate | None:
        """Apply updates to one file's text.

        Args:
            path: File path, used for the result and for logging
            content: Original file text
            updates: Updates targeting this file

        Returns:
            FileUpdate, or None if nothing changed

        Raises:
            FileUpdateError: If the original or rewritten text is not valid YAML
        """
        try:
            documents = compose_documents(content)
        except yaml.YAMLError as e:
            raise FileUpdateError(f"Cannot parse {path}: {e}") from e

        targets: list[tuple[ScalarNode, VersionUpdate]] = []
        claimed: set[int] = set()
        for update in updates:
            node = self._locate(path, documents, update)
            if node is None or node.start_mark.index in claimed:
                continue
            claimed.add(node.start_mark.index)
            targets.append((node, update))

        updated = content
        # Splice back to front so earlier offsets stay valid
        for node, update in sorted(targets, key=lambda t: t[0].start_mark.index, reverse=True):
            updated = replace_scalar(updated, node, update.new_version)

        if updated == content:
            return None

        try:
            compose_documents(updated)
        except yaml.YAMLError as e:
            raise FileUpdateError(f"Rewritten {path} is not valid YAML: {e}") from e

        applied = tuple(update for _, update in sorted(targets, key=lambda t: updates.index(t[1])))
        for update in applied:
            logger.info(
                "version_updated",
                path=path,
                chart=update.dependency.chart_name,
                old_version=update.current_version,
                new_version=update.new_version,
            )
        return FileUpdate(path=path, original_content=content, updated_content=updated, updates=applied)

    def _locate(self, path: str, documents: list, update: VersionUpdate) -> ScalarNode | None:
        dependency = update.dependency
        try:
            if not 0 <= dependency.document_index < len(documents):
                raise PathNotFoundError(f"Document {dependency.document_index} not found")
            node = find_scalar(documents[dependency.document_index], dependency.version_path)
        except PathNotFoundError as e:
            logger.warning(
                "version_path_not_found",
                path=path,
                chart=dependency.chart_name,
                version_path=list(dependency.version_path),
                error=str(e),
            )
            return None

        if node.value.strip() != update.current_version.strip():
            logger.warning(
                "version_mismatch",
                path=path,
                chart=dependency.chart_name,
                expected=update.current_version,
                found=node.value,
            )
            return None
        return node

    @staticmethod
    def write(file_update: FileUpdate) -> None:
        """Write a FileUpdate's rewritten content to disk.

        Raises:
            FileUpdateError: If the file cannot be written
        """
        try:
            with open(file_update.path, "w", encoding="utf-8", newline="") as f:
                f.write(file_update.updated_content)
        except OSError as e:
            raise FileUpdateError(f"Failed to write {file_update.path}: {e}") from e
        logger.debug("manifest_written", path=file_update.path)
