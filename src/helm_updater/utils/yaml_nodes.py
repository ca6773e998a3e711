"""YAML loading and position-aware node lookup used for in-place text edits."""

from typing import Any

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from helm_updater.core.exceptions import PathNotFoundError
from helm_updater.core.models import VersionPath


_NUMBER_TAGS = ("tag:yaml.org,2002:int", "tag:yaml.org,2002:float")


class ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps plain numeric scalars as their source text.

    A chart version written as ``targetRevision: 1.10`` must stay ``"1.10"``
    rather than become the float ``1.1``.
    """


ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in _NUMBER_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_documents(content: str) -> list[Any]:
    """Load every document in a YAML stream with numbers kept as text.

    Raises:
        yaml.YAMLError: If the stream is not valid YAML
    """
    return list(yaml.load_all(content, Loader=ManifestLoader))


def compose_documents(content: str) -> list[Node | None]:
    """Compose every document in a YAML stream into a node tree.

    Documents keep their stream position, so the list index matches the
    ``document_index`` produced while scanning.

    Raises:
        yaml.YAMLError: If the stream is not valid YAML
    """
    return list(yaml.compose_all(content, Loader=yaml.SafeLoader))


def find_scalar(root: Node | None, path: VersionPath) -> ScalarNode:
    """Follow a field path to a scalar node.

    Args:
        root: Document root node
        path: Mapping keys and sequence indices from the root

    Returns:
        The scalar node at the end of the path

    Raises:
        PathNotFoundError: If any path segment is missing or the target is not a scalar
    """
    node = root
    for depth, segment in enumerate(path):
        where = ".".join(str(s) for s in path[: depth + 1])
        if isinstance(node, MappingNode):
            node = next(
                (value for key, value in node.value if isinstance(key, ScalarNode) and key.value == str(segment)),
                None,
            )
        elif isinstance(node, SequenceNode) and isinstance(segment, int):
            node = node.value[segment] if 0 <= segment < len(node.value) else None
        else:
            node = None

        if node is None:
            raise PathNotFoundError(f"Path segment not found: {where}")

    if not isinstance(node, ScalarNode):
        raise PathNotFoundError(f"Value at {'.'.join(str(s) for s in path)} is not a scalar")
    return node


def render_scalar(node: ScalarNode, value: str) -> str:
    """Render ``value`` in the quoting style of an existing scalar."""
    if node.style == "'":
        return "'" + value.replace("'", "''") + "'"
    if node.style in ('"', "|", ">"):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def replace_scalar(content: str, node: ScalarNode, value: str) -> str:
    """Replace the source text of one scalar, leaving every other character untouched."""
    start, end = node.start_mark.index, node.end_mark.index
    rendered = render_scalar(node, value)
    # Block scalars own their trailing line breaks
    if node.style in ("|", ">"):
        original = content[start:end]
        rendered += original[len(original.rstrip("\n")):]
    return content[:start] + rendered + content[end:]
