from s3_deploy.config import SyncConfig
from s3_deploy.plan import EmptySourceError
from s3_deploy.plan import Job
from s3_deploy.plan import JobAction
from s3_deploy.plan import SourceNotFoundError
from s3_deploy.plan import SourceReadError
from s3_deploy.plan import build_plan
from s3_deploy.plan import local_files
from s3_deploy.plan import relative_key
from s3_deploy.plan import remote_key
from unittest import mock

import os
import pytest


def _store(*keys):
    store = mock.Mock()
    store.list_objects.return_value = list(keys)
    return store


@pytest.fixture
def source(tmp_path):
    root = tmp_path / "public"
    root.mkdir()
    (root / "a.txt").write_bytes(b"a")
    (root / "b.jpg").write_bytes(b"b")
    return root


def _config(source, **kwargs):
    return SyncConfig(bucket="test-bucket", source=str(source), **kwargs)


def _unreadable(directory):
    """Patch os.scandir so that listing directory fails."""
    blocked = str(directory)
    scandir = os.scandir

    def fake_scandir(path="."):
        if os.fspath(path) == blocked:
            raise PermissionError(13, "Permission denied", blocked)
        return scandir(path)

    return mock.patch("os.scandir", side_effect=fake_scandir)


class TestKeys:
    def test_remote_key(self):
        assert remote_key("", "a.txt") == "a.txt"
        assert remote_key("site", "css/a.css") == "site/css/a.css"
        assert remote_key("site", "/old") == "site/old"

    def test_relative_key(self):
        assert relative_key("", "a.txt") == "a.txt"
        assert relative_key("site", "site/css/a.css") == "css/a.css"
        assert relative_key("site", "other/a.css") == "other/a.css"


class TestLocalFiles:
    def test_walks_recursively_sorted(self, tmp_path):
        (tmp_path / "z.txt").write_bytes(b"")
        (tmp_path / "sub" / "deeper").mkdir(parents=True)
        (tmp_path / "sub" / "deeper" / "x.txt").write_bytes(b"x")
        (tmp_path / "sub" / "b.txt").write_bytes(b"b")
        (tmp_path / "empty").mkdir()

        assert list(local_files(str(tmp_path))) == [
            "z.txt",
            "sub/b.txt",
            "sub/deeper/x.txt",
        ]

    def test_missing_source(self, tmp_path):
        with pytest.raises(SourceNotFoundError):
            list(local_files(str(tmp_path / "missing")))

    def test_unreadable_subdirectory_fails(self, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"a")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_bytes(b"b")

        with _unreadable(tmp_path / "sub"):
            with pytest.raises(SourceReadError, match="Permission denied"):
                list(local_files(str(tmp_path)))

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_broken_symlink_skipped(self, tmp_path):
        (tmp_path / "real.txt").write_bytes(b"r")
        os.symlink(tmp_path / "nowhere", tmp_path / "dangling")
        assert list(local_files(str(tmp_path))) == ["real.txt"]


class TestBuildPlan:
    def test_uploads_into_empty_target(self, source):
        plan = build_plan(_config(source), _store())

        assert plan.jobs == [
            Job(JobAction.UPLOAD, str(source / "a.txt"), "a.txt"),
            Job(JobAction.UPLOAD, str(source / "b.jpg"), "b.jpg"),
        ]
        assert plan.invalidation is None
        assert len(plan) == 2

    def test_uploads_below_target(self, source):
        store = _store()
        plan = build_plan(_config(source, target="site/v1"), store)

        assert [job.remote for job in plan.jobs] == ["site/v1/a.txt", "site/v1/b.jpg"]
        store.list_objects.assert_called_once_with("site/v1/")

    def test_lists_whole_bucket_without_target(self, source):
        store = _store()
        build_plan(_config(source), store)
        store.list_objects.assert_called_once_with("")

    def test_no_delete_jobs_when_disabled(self, source):
        plan = build_plan(_config(source), _store("a.txt", "old.txt"))
        assert plan.count(JobAction.DELETE) == 0

    def test_orphans_deleted_when_enabled(self, source):
        plan = build_plan(
            _config(source, delete=True), _store("a.txt", "b.jpg", "old.txt")
        )
        assert plan.jobs[-1] == Job(JobAction.DELETE, "", "old.txt")
        assert plan.count(JobAction.DELETE) == 1

    def test_orphans_below_target(self, source):
        plan = build_plan(
            _config(source, target="site", delete=True),
            _store("site/a.txt", "site/gone/old.txt"),
        )
        deletes = [job for job in plan.jobs if job.action is JobAction.DELETE]
        assert deletes == [Job(JobAction.DELETE, "", "site/gone/old.txt")]

    def test_redirects(self, source):
        plan = build_plan(
            _config(
                source,
                target="site",
                redirects={"/old/page": "https://example.com/new"},
            ),
            _store(),
        )
        assert Job(
            JobAction.REDIRECT, "site/old/page", "https://example.com/new"
        ) in plan.jobs

    def test_redirect_sources_are_not_orphans(self, source):
        plan = build_plan(
            _config(source, delete=True, redirects={"old/page": "/new"}),
            _store("a.txt", "b.jpg", "old/page"),
        )
        assert plan.count(JobAction.DELETE) == 0
        assert plan.count(JobAction.REDIRECT) == 1

    def test_invalidation_is_separate_and_last(self, source):
        plan = build_plan(
            _config(source, target="site", cloudfront_distribution="E123"), _store()
        )
        assert plan.invalidation == Job(JobAction.INVALIDATE, "", "/site/*")
        assert all(job.action is not JobAction.INVALIDATE for job in plan.jobs)
        assert len(plan) == 3

    def test_invalidation_without_target(self, source):
        plan = build_plan(_config(source, cloudfront_distribution="E123"), _store())
        assert plan.invalidation.remote == "/*"

    def test_empty_source_fails(self, tmp_path):
        with pytest.raises(EmptySourceError, match="source directory is empty"):
            build_plan(_config(tmp_path), _store())

    def test_source_with_only_empty_dirs_is_empty(self, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        with pytest.raises(EmptySourceError):
            build_plan(_config(tmp_path), _store())

    def test_empty_source_allowed(self, tmp_path, caplog):
        with caplog.at_level("WARNING", logger="s3_deploy.plan"):
            plan = build_plan(_config(tmp_path, allow_empty_source=True), _store())
        assert plan.jobs == []
        assert "source directory is empty" in caplog.text

    def test_empty_source_with_delete_removes_everything(self, tmp_path):
        plan = build_plan(
            _config(tmp_path, allow_empty_source=True, delete=True),
            _store("a.txt", "b.txt"),
        )
        assert [job.remote for job in plan.jobs] == ["a.txt", "b.txt"]

    def test_unreadable_subdirectory_deletes_nothing(self, source):
        (source / "sub").mkdir()
        (source / "sub" / "b.txt").write_bytes(b"b")
        store = _store("a.txt", "b.jpg", "sub/b.txt")

        with _unreadable(source / "sub"):
            with pytest.raises(SourceReadError, match="cannot read source directory"):
                build_plan(_config(source, delete=True), store)

    def test_listing_error_propagates(self, source):
        store = mock.Mock()
        store.list_objects.side_effect = RuntimeError("list failed")
        with pytest.raises(RuntimeError, match="list failed"):
            build_plan(_config(source), store)
