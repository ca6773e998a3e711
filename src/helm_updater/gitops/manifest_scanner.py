"""Discovery and parsing of ArgoCD manifest files."""

from fnmatch import fnmatch
from pathlib import Path
from typing import Any

import yaml

from helm_updater.core.config import UpdaterConfig
from helm_updater.core.exceptions import ManifestError
from helm_updater.core.models import ManifestDocument, ManifestFile
from helm_updater.utils.logging import get_logger
from helm_updater.utils.yaml_nodes import load_documents

logger = get_logger(__name__)

ARGOCD_API_PREFIX = "argoproj.io/"
ARGOCD_KINDS = ("Application", "ApplicationSet")


class ManifestScanner:
    """Find YAML files and keep the ones holding ArgoCD resources."""

    def __init__(self, config: UpdaterConfig | None = None):
        """Initialize manifest scanner.

        Args:
            config: Updater configuration providing include/exclude patterns
        """
        self.config = config or UpdaterConfig()

    def discover_files(self, root: str | Path = ".") -> list[Path]:
        """Find files matching the include patterns but none of the exclude patterns.

        Args:
            root: Directory the patterns are relative to

        Returns:
            Sorted, de-duplicated file paths

        Raises:
            ManifestError: If root is not a directory
        """
        root_path = Path(root)
        if not root_path.is_dir():
            raise ManifestError(f"Manifest root is not a directory: {root_path}")
        found: set[Path] = set()

        for pattern in self.config.include_paths:
            for path in root_path.glob(pattern):
                if not path.is_file():
                    continue
                relative = path.relative_to(root_path).as_posix()
                if any(fnmatch(relative, exclude) for exclude in self.config.exclude_paths):
                    continue
                found.add(path)

        logger.debug("files_discovered", root=str(root_path), count=len(found))
        return sorted(found)

    @staticmethod
    def parse_yaml(content: str) -> list[ManifestDocument]:
        """Parse a (possibly multi-document) YAML stream.

        Empty and non-mapping documents are dropped but still count towards
        the stream position recorded in ``ManifestDocument.index``.

        Args:
            content: Raw YAML text

        Returns:
            Parsed documents, or an empty list if the YAML is invalid
        """
        try:
            raw_documents = load_documents(content)
        except yaml.YAMLError as e:
            logger.debug("yaml_parse_failed", error=str(e))
            return []

        documents = []
        for index, raw in enumerate(raw_documents):
            if not isinstance(raw, dict):
                continue
            documents.append(
                ManifestDocument(
                    kind=str(raw.get("kind") or ""),
                    api_version=str(raw.get("apiVersion") or ""),
                    metadata=_mapping(raw.get("metadata")),
                    spec=_mapping(raw.get("spec")),
                    raw=raw,
                    index=index,
                )
            )
        return documents

    @staticmethod
    def is_argocd_resource(document: ManifestDocument) -> bool:
        """Check whether a document is an ArgoCD Application or ApplicationSet."""
        return document.api_version.startswith(ARGOCD_API_PREFIX) and document.kind in ARGOCD_KINDS

    def scan(self, root: str | Path = ".") -> list[ManifestFile]:
        """Scan a directory tree for ArgoCD manifests.

        Files that cannot be read are logged and skipped.

        Args:
            root: Directory to scan

        Returns:
            Manifest files containing at least one ArgoCD resource
        """
        manifests: list[ManifestFile] = []
        files = self.discover_files(root)

        for path in files:
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("manifest_read_failed", path=str(path), error=str(e))
                continue

            documents = [doc for doc in self.parse_yaml(content) if self.is_argocd_resource(doc)]
            if documents:
                manifests.append(ManifestFile(path=str(path), content=content, documents=documents))

        logger.info("manifests_scanned", files=len(files), manifests=len(manifests))
        return manifests


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}
