"""Interface definitions for pluggable collaborators."""

from helm_updater.interfaces.exceptions import (
    InterfaceError,
    MalformedRegistryResponseError,
    RegistryClientError,
)
from helm_updater.interfaces.registry_client import RegistryClient

__all__ = [
    "InterfaceError",
    "MalformedRegistryResponseError",
    "RegistryClient",
    "RegistryClientError",
]
