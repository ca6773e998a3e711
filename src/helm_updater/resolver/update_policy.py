"""Update strategy, ignore rules and dependency groups."""

import re
from collections.abc import Iterable
from fnmatch import fnmatchcase

import semver

from helm_updater.core.config import DependencyGroup, IgnoreRule, UpdaterConfig
from helm_updater.core.models import RepoType, UpdateStrategy, VersionUpdate
from helm_updater.utils.logging import get_logger
from helm_updater.utils.version_parser import VersionParser, parse_version

logger = get_logger(__name__)

UNGROUPED = "ungrouped"


def matches_pattern(name: str, pattern: str) -> bool:
    """Case-insensitive glob match supporting ``*`` and ``?``."""
    return fnmatchcase(name.lower(), pattern.strip().lower())


def coerce_strategy(value: "UpdateStrategy | str | None") -> UpdateStrategy:
    """Turn a strategy name into an UpdateStrategy, falling back to ``all``."""
    if isinstance(value, UpdateStrategy):
        return value
    if value is None:
        return UpdateStrategy.ALL
    try:
        return UpdateStrategy(str(value).lower())
    except ValueError:
        logger.warning("unknown_update_strategy", strategy=value, message=f"Unknown update strategy '{value}'")
        return UpdateStrategy.ALL


class UpdatePolicy:
    """Decides which candidate versions a dependency may move to."""

    def __init__(
        self,
        strategy: "UpdateStrategy | str | None" = UpdateStrategy.ALL,
        ignore: Iterable[IgnoreRule] = (),
        groups: dict[str, DependencyGroup] | None = None,
    ):
        self.strategy = coerce_strategy(strategy)
        self.ignore = list(ignore)
        self.groups = dict(groups or {})

    @classmethod
    def from_config(cls, config: UpdaterConfig) -> "UpdatePolicy":
        """Build the policy from updater configuration."""
        return cls(config.update_strategy, config.ignore, config.groups)

    def within_strategy(self, anchor: semver.Version | None, candidate: semver.Version) -> bool:
        """Check the update strategy ceiling relative to the anchor version.

        Args:
            anchor: Version the strategy is measured from (None means unrestricted)
            candidate: Candidate version

        Returns:
            True if the candidate is allowed by the strategy
        """
        if anchor is None or self.strategy in (UpdateStrategy.MAJOR, UpdateStrategy.ALL):
            return True
        if self.strategy == UpdateStrategy.MINOR:
            return candidate.major == anchor.major
        return candidate.major == anchor.major and candidate.minor == anchor.minor

    def rules_for(self, chart_name: str) -> list[IgnoreRule]:
        """Get the ignore rules whose dependency name matches a chart."""
        return [rule for rule in self.ignore if matches_pattern(chart_name, rule.dependency_name)]

    def is_dependency_ignored(self, chart_name: str) -> bool:
        """Whether a rule ignores every update of this chart."""
        return any(rule.ignores_dependency for rule in self.rules_for(chart_name))

    def is_version_ignored(
        self, chart_name: str, anchor: semver.Version | None, candidate: str
    ) -> bool:
        """Whether an ignore rule excludes a specific candidate version.

        A rule excludes a candidate when one of its version patterns matches
        it or when the candidate's update type is one of its update types.
        Unparsable patterns never match.
        """
        update_type = VersionParser.classify_update(anchor, candidate) if anchor is not None else None

        for rule in self.rules_for(chart_name):
            if rule.versions and any(VersionParser.satisfies(candidate, pattern) for pattern in rule.versions):
                logger.debug("version_ignored", chart=chart_name, version=candidate, reason="version_pattern")
                return True
            if rule.update_types and update_type in rule.update_types:
                logger.debug("version_ignored", chart=chart_name, version=candidate, reason=update_type.value)
                return True
        return False

    def group_for(self, chart_name: str) -> tuple[str, DependencyGroup] | None:
        """Get the first group (in configuration order) whose patterns match a chart."""
        for name, group in self.groups.items():
            if any(matches_pattern(chart_name, pattern) for pattern in group.patterns):
                return name, group
        return None

    def is_allowed_by_group(
        self, chart_name: str, anchor: semver.Version | None, candidate: str
    ) -> bool:
        """Whether the chart's group, if any, permits the candidate's update type."""
        found = self.group_for(chart_name)
        if found is None or not found[1].update_types or anchor is None:
            return True
        update_type = VersionParser.classify_update(anchor, candidate)
        return update_type is None or update_type in found[1].update_types

    def allows(self, chart_name: str, anchor: semver.Version | None, candidate: str) -> bool:
        """Combined strategy, ignore and group check for one candidate."""
        parsed = parse_version(candidate)
        if parsed is None:
            return False
        return (
            self.within_strategy(anchor, parsed)
            and not self.is_version_ignored(chart_name, anchor, candidate)
            and self.is_allowed_by_group(chart_name, anchor, candidate)
        )

    def group_updates(self, updates: Iterable[VersionUpdate]) -> dict[str, list[VersionUpdate]]:
        """Bucket updates by dependency group.

        Each update lands in the first group whose patterns match its chart and
        whose update types (if any) include the update's type; the rest go to
        ``"ungrouped"``. Empty buckets are dropped.

        Args:
            updates: Selected version updates

        Returns:
            Mapping of group name to updates, in configuration order
        """
        buckets: dict[str, list[VersionUpdate]] = {name: [] for name in self.groups}
        buckets[UNGROUPED] = []

        for update in updates:
            update_type = VersionParser.classify_update(update.current_version, update.new_version)
            target = UNGROUPED
            for name, group in self.groups.items():
                if not any(matches_pattern(update.dependency.chart_name, p) for p in group.patterns):
                    continue
                if group.update_types and update_type not in group.update_types:
                    continue
                target = name
                break
            buckets[target].append(update)

        return {name: items for name, items in buckets.items() if items}


def release_notes_url(repo_url: str, repo_type: RepoType, chart_name: str) -> str:
    """Best-effort link to a chart's release notes.

    Args:
        repo_url: Repository URL of the dependency
        repo_type: Repository type
        chart_name: Chart name

    Returns:
        GitHub releases URL when the source is hosted on GitHub, otherwise
        the repository URL itself
    """
    url = repo_url.strip().rstrip("/")

    pages = re.match(r"^https?://([^./]+)\.github\.io/([^/]+)", url)
    if pages:
        return f"https://github.com/{pages.group(1)}/{pages.group(2)}/releases"

    if repo_type == RepoType.OCI:
        ghcr = re.match(r"^(?:oci://)?ghcr\.io/([^/]+)", url)
        if ghcr:
            return f"https://github.com/{ghcr.group(1)}/{chart_name.split('/')[-1]}/releases"

    if "charts.bitnami.com" in url:
        return f"https://github.com/bitnami/charts/tree/main/bitnami/{chart_name}"

    return url
