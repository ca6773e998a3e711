"""Tests for in-place manifest rewriting."""

from unittest.mock import MagicMock

import pytest

from helm_updater.core.exceptions import FileUpdateError
from helm_updater.core.models import FileUpdate, RepoType, VersionUpdate
from helm_updater.gitops.file_updater import FileUpdater


@pytest.fixture
def version_update(dependency_factory):
    """Provide a factory for VersionUpdate objects."""

    def build(current: str, new: str, **dependency) -> VersionUpdate:
        dependency.setdefault("current_version", current)
        return VersionUpdate(dependency=dependency_factory(**dependency), current_version=current, new_version=new)

    return build


MULTI_DOCUMENT = """apiVersion: v1
kind: ConfigMap
metadata:
  name: settings
data:
  targetRevision: 1.0.0
---
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: first
spec:
  source:
    repoURL: https://charts.example.com
    chart: app
    targetRevision: 1.0.0
---
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: second
spec:
  source:
    repoURL: https://charts.example.com
    chart: app
    targetRevision: 1.0.0
"""


@pytest.fixture
def updater() -> FileUpdater:
    """Provide a file updater."""
    return FileUpdater()


class TestUpdateContent:
    """Tests for FileUpdater.update_content."""

    def test_preserves_everything_but_the_version(self, version_update, updater, nginx_application):
        """Test only the version scalar changes."""
        update = version_update("15.9.0", "16.0.0")

        result = updater.update_content("apps/nginx.yaml", nginx_application, [update])

        assert result.updated_content == nginx_application.replace(
            "targetRevision: 15.9.0  # pinned", "targetRevision: 16.0.0  # pinned"
        )
        assert result.original_content == nginx_application
        assert result.updates == (update,)
        assert result.has_changes

    def test_keeps_quote_styles(self, version_update, updater, multi_source_application):
        """Test single, double and plain quoting survive the rewrite."""
        updates = [
            version_update("12.5.0", "12.5.6", chart_name="postgresql", version_path=("spec", "sources", 0, "targetRevision")),
            version_update(
                "2.1.0",
                "2.2.0",
                chart_name="api",
                repo_url="oci://ghcr.io/example/charts",
                repo_type=RepoType.OCI,
                version_path=("spec", "sources", 2, "targetRevision"),
            ),
        ]

        result = updater.update_content("apps/platform.yaml", multi_source_application, updates)

        expected = multi_source_application.replace('"12.5.0"', '"12.5.6"').replace("'2.1.0'", "'2.2.0'")
        assert result.updated_content == expected
        assert [u.new_version for u in result.updates] == ["12.5.6", "2.2.0"]

    def test_template_and_block_scalar_untouched(self, version_update, updater, application_set):
        """Test unrelated templates and block scalars are left alone."""
        update = version_update(
            "18.0.0",
            "18.1.0",
            chart_name="redis",
            version_path=("spec", "template", "spec", "source", "targetRevision"),
        )

        result = updater.update_content("appsets/redis.yaml", application_set, [update])

        expected = application_set.replace(
            "        targetRevision: 18.0.0\n        helm:", "        targetRevision: 18.1.0\n        helm:"
        )
        assert result.updated_content == expected
        assert "            targetRevision: 18.0.0\n" in result.updated_content
        assert "'{{cluster}}-redis'" in result.updated_content

    def test_targets_only_the_addressed_document(self, version_update, updater):
        """Test only the addressed document in a stream is rewritten."""
        update = version_update("1.0.0", "2.0.0", chart_name="app", document_index=2)

        result = updater.update_content("apps/multi.yaml", MULTI_DOCUMENT, [update])

        head, _, tail = MULTI_DOCUMENT.rpartition("targetRevision: 1.0.0")
        assert result.updated_content == head + "targetRevision: 2.0.0" + tail
        assert result.updated_content.count("targetRevision: 1.0.0") == 2

    def test_multiple_documents_in_one_pass(self, version_update, updater):
        """Test updates to several documents apply in one pass."""
        updates = [
            version_update("1.0.0", "2.0.0", chart_name="app", document_index=1),
            version_update("1.0.0", "3.0.0", chart_name="app", document_index=2),
        ]

        result = updater.update_content("apps/multi.yaml", MULTI_DOCUMENT, updates)

        assert "data:\n  targetRevision: 1.0.0\n" in result.updated_content
        assert result.updated_content.count("targetRevision: 2.0.0") == 1
        assert result.updated_content.endswith("targetRevision: 3.0.0\n")
        assert len(result.updates) == 2

    def test_length_change_keeps_later_offsets_valid(self, version_update, updater):
        """Test a longer version does not shift later replacements."""
        content = (
            "spec:\n"
            "  sources:\n"
            "    - chart: a\n      targetRevision: 1.0.0\n"
            "    - chart: b\n      targetRevision: 1.0.0\n"
        )
        updates = [
            version_update("1.0.0", "10.20.30", chart_name="a", version_path=("spec", "sources", 0, "targetRevision")),
            version_update("1.0.0", "1.0.1", chart_name="b", version_path=("spec", "sources", 1, "targetRevision")),
        ]

        result = updater.update_content("x.yaml", content, updates)

        assert result.updated_content == (
            "spec:\n"
            "  sources:\n"
            "    - chart: a\n      targetRevision: 10.20.30\n"
            "    - chart: b\n      targetRevision: 1.0.1\n"
        )

    def test_block_scalar_version(self, version_update, updater):
        """Test a version written as a block scalar is replaced."""
        content = "spec:\n  source:\n    targetRevision: |\n      1.0.0\n    chart: app\n"
        update = version_update("1.0.0", "1.1.0", chart_name="app")

        result = updater.update_content("x.yaml", content, [update])

        assert result.updated_content == 'spec:\n  source:\n    targetRevision: "1.1.0"\n    chart: app\n'

    def test_crlf_line_endings_preserved(self, version_update, updater, nginx_application):
        """Test CRLF line endings are kept."""
        content = nginx_application.replace("\n", "\r\n")

        result = updater.update_content("apps/nginx.yaml", content, [version_update("15.9.0", "16.0.0")])

        assert result.updated_content == content.replace("15.9.0", "16.0.0")
        assert "\n" not in result.updated_content.replace("\r\n", "")

    def test_version_mismatch_skipped(self, version_update, updater, nginx_application):
        """Test an update whose current version no longer matches is skipped."""
        assert updater.update_content("apps/nginx.yaml", nginx_application, [version_update("15.8.0", "16.0.0")]) is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"version_path": ("spec", "sources", 0, "targetRevision")},
            {"version_path": ("spec", "source")},
            {"document_index": 3},
        ],
    )
    def test_unresolvable_path_skipped(self, version_update, updater, nginx_application, overrides):
        """Test an update with a missing path is skipped."""
        update = version_update("15.9.0", "16.0.0", **overrides)
        assert updater.update_content("apps/nginx.yaml", nginx_application, [update]) is None

    def test_skipped_update_does_not_block_others(self, version_update, updater, multi_source_application):
        """Test a skipped update does not stop the rest."""
        stale = version_update("12.4.0", "12.5.6", chart_name="postgresql", version_path=("spec", "sources", 0, "targetRevision"))
        fresh = version_update("2.1.0", "2.2.0", chart_name="api", version_path=("spec", "sources", 2, "targetRevision"))

        result = updater.update_content("apps/platform.yaml", multi_source_application, [stale, fresh])

        assert result.updates == (fresh,)
        assert '"12.5.0"' in result.updated_content

    def test_duplicate_updates_applied_once(self, version_update, updater, nginx_application):
        """Test identical updates are applied once."""
        update = version_update("15.9.0", "16.0.0")

        result = updater.update_content("apps/nginx.yaml", nginx_application, [update, update])

        assert result.updates == (update,)
        assert result.updated_content.count("16.0.0") == 1

    def test_same_version_is_no_change(self, version_update, updater, nginx_application):
        """Test rewriting to the same version changes nothing."""
        assert updater.update_content("apps/nginx.yaml", nginx_application, [version_update("15.9.0", "15.9.0")]) is None

    def test_invalid_yaml_raises(self, version_update, updater):
        """Test invalid YAML raises a file update error."""
        with pytest.raises(FileUpdateError):
            updater.update_content("x.yaml", "spec: [unclosed\n", [version_update("1.0.0", "2.0.0")])


class TestUpdateManifests:
    """Tests for FileUpdater.update_manifests."""

    @pytest.mark.asyncio
    async def test_reads_each_file_once(self, version_update, multi_source_application):
        """Test each file is read once regardless of update count."""
        read_file = MagicMock(return_value=multi_source_application)
        updater = FileUpdater(read_file=read_file)
        updates = [
            version_update(
                "12.5.0",
                "13.0.0",
                manifest_path="apps/platform.yaml",
                chart_name="postgresql",
                version_path=("spec", "sources", 0, "targetRevision"),
            ),
            version_update(
                "2.1.0",
                "2.2.0",
                manifest_path="apps/platform.yaml",
                chart_name="api",
                version_path=("spec", "sources", 2, "targetRevision"),
            ),
        ]

        results = await updater.update_manifests(updates)

        read_file.assert_called_once_with("apps/platform.yaml")
        assert len(results) == 1
        assert len(results[0].updates) == 2

    @pytest.mark.asyncio
    async def test_one_result_per_file_in_order(self, version_update, nginx_application, application_set):
        """Test one result per file in first-seen order."""
        files = {"apps/nginx.yaml": nginx_application, "appsets/redis.yaml": application_set}
        updater = FileUpdater(read_file=files.__getitem__)
        updates = [
            version_update(
                "18.0.0",
                "18.1.0",
                manifest_path="appsets/redis.yaml",
                chart_name="redis",
                version_path=("spec", "template", "spec", "source", "targetRevision"),
            ),
            version_update("15.9.0", "16.0.0", manifest_path="apps/nginx.yaml"),
        ]

        results = await updater.update_manifests(updates)

        assert [r.path for r in results] == ["appsets/redis.yaml", "apps/nginx.yaml"]

    @pytest.mark.asyncio
    async def test_read_failure_skips_only_that_file(self, version_update, nginx_application):
        """Test an unreadable file is skipped and others are updated."""
        def read_file(path: str) -> str:
            if path == "apps/missing.yaml":
                raise FileNotFoundError(path)
            return nginx_application

        updater = FileUpdater(read_file=read_file)
        updates = [
            version_update("15.9.0", "16.0.0", manifest_path="apps/missing.yaml"),
            version_update("15.9.0", "16.0.0", manifest_path="apps/nginx.yaml"),
        ]

        results = await updater.update_manifests(updates)

        assert [r.path for r in results] == ["apps/nginx.yaml"]

    @pytest.mark.asyncio
    async def test_invalid_yaml_skips_only_that_file(self, version_update, nginx_application):
        """Test a file with invalid YAML is skipped and others are updated."""
        files = {"broken.yaml": "spec: [unclosed\n", "apps/nginx.yaml": nginx_application}
        updater = FileUpdater(read_file=files.__getitem__)
        updates = [
            version_update("15.9.0", "16.0.0", manifest_path="broken.yaml"),
            version_update("15.9.0", "16.0.0", manifest_path="apps/nginx.yaml"),
        ]

        results = await updater.update_manifests(updates)

        assert [r.path for r in results] == ["apps/nginx.yaml"]

    @pytest.mark.asyncio
    async def test_no_updates(self):
        """Test no updates yields no results."""
        read_file = MagicMock()
        assert await FileUpdater(read_file=read_file).update_manifests([]) == []
        read_file.assert_not_called()


class TestWrite:
    """Tests for reading and writing real files."""

    @pytest.mark.asyncio
    async def test_round_trip_on_disk_keeps_crlf(self, version_update, tmp_path, nginx_application):
        """Test writing a rewritten CRLF file keeps its line endings."""
        manifest = tmp_path / "nginx.yaml"
        original = nginx_application.replace("\n", "\r\n").encode()
        manifest.write_bytes(original)
        updater = FileUpdater()

        results = await updater.update_manifests([version_update("15.9.0", "16.0.0", manifest_path=str(manifest))])
        updater.write(results[0])

        assert manifest.read_bytes() == original.replace(b"15.9.0", b"16.0.0")

    def test_write_failure(self, tmp_path):
        """Test write failures raise FileUpdateError."""
        file_update = FileUpdate(path=str(tmp_path / "missing" / "x.yaml"), original_content="a", updated_content="b")

        with pytest.raises(FileUpdateError):
            FileUpdater.write(file_update)
