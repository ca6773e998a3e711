"""Custom exceptions for the Helm updater."""


class HelmUpdaterError(Exception):
    """Base exception for all Helm updater errors."""


class ConfigurationError(HelmUpdaterError):
    """Configuration-related errors."""


class ManifestError(HelmUpdaterError):
    """Manifest discovery or parsing failed."""


class FileUpdateError(HelmUpdaterError):
    """Rewriting a manifest file failed."""


class PathNotFoundError(FileUpdateError):
    """A version path does not resolve to a scalar in the document."""
