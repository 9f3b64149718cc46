"""Tests for the artifact lifecycle manager"""

import asyncio

import pytest

from fastfile.artifacts.models import ArtifactState
from fastfile.artifacts.service import ArtifactLifecycleManager
from fastfile.core.exceptions import ArtifactNotFoundError, DownloadExpiredError


@pytest.fixture
def manager(short_expiry_settings):
    lifecycle = ArtifactLifecycleManager(short_expiry_settings)
    lifecycle.clear_on_startup()
    yield lifecycle
    lifecycle.shutdown()


@pytest.fixture
def make_artifact(manager):
    def _make_artifact(name: str, content: bytes = b"converted") -> str:
        (manager.output_dir / name).write_bytes(content)
        return name

    return _make_artifact


@pytest.mark.unit
class TestArtifactLifecycle:
    """Tracking, expiry and download hand-off"""

    def test_untracked_is_expired(self, manager):
        assert manager.is_expired("never-tracked.md")
        assert manager.state("never-tracked.md") is ArtifactState.UNTRACKED

    @pytest.mark.asyncio
    async def test_tracked_is_fresh(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md")
        manager.track(name)

        assert not manager.is_expired(name)
        assert manager.state(name) is ArtifactState.TRACKED
        assert manager.tracked_count == 1

    @pytest.mark.asyncio
    async def test_expiry_deletes_file(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md")
        manager.track(name)

        await asyncio.sleep(0.4)

        assert manager.is_expired(name)
        assert not (manager.output_dir / name).exists()
        assert manager.tracked_count == 0

    @pytest.mark.asyncio
    async def test_retracking_restarts_window(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md")
        manager.track(name)
        await asyncio.sleep(0.12)
        manager.track(name)
        await asyncio.sleep(0.12)

        assert manager.tracked_count == 1
        assert not manager.is_expired(name)
        assert (manager.output_dir / name).exists()

        await asyncio.sleep(0.2)
        assert not (manager.output_dir / name).exists()

    @pytest.mark.asyncio
    async def test_stop_tracking_keeps_file(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md")
        manager.track(name)

        assert manager.stop_tracking(name) is True
        assert manager.stop_tracking(name) is False
        assert manager.is_expired(name)

        await asyncio.sleep(0.3)
        assert (manager.output_dir / name).exists()

    @pytest.mark.asyncio
    async def test_open_for_download(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md", b"# Report\n")
        manager.track(name)

        path, handle, size = manager.open_for_download(name)
        try:
            assert path == manager.output_dir / name
            assert size == len(b"# Report\n")
            assert handle.read() == b"# Report\n"
        finally:
            handle.close()

        await manager.complete_download(name)
        assert not path.exists()
        assert manager.is_expired(name)

    @pytest.mark.asyncio
    async def test_open_expired_or_missing(self, manager, make_artifact):
        with pytest.raises(DownloadExpiredError):
            manager.open_for_download("never-tracked.md")

        manager.track("vanished-1a2b3c4d.md")
        with pytest.raises(ArtifactNotFoundError):
            manager.open_for_download("vanished-1a2b3c4d.md")

    @pytest.mark.asyncio
    async def test_get_stats(self, manager, make_artifact):
        assert manager.get_stats().tracked_files == 0

        for name in ("a-00000001.md", "b-00000002.md", "c-00000003.md"):
            manager.track(make_artifact(name))

        stats = manager.get_stats()
        assert stats.tracked_files == 3
        assert stats.oldest_file == "a-00000001.md"
        assert stats.newest_file == "c-00000003.md"

    @pytest.mark.asyncio
    async def test_shutdown_keeps_files(self, manager, make_artifact):
        name = make_artifact("report-1a2b3c4d.md")
        manager.track(name)

        manager.shutdown()
        await asyncio.sleep(0.3)

        assert manager.tracked_count == 0
        assert (manager.output_dir / name).exists()

    def test_clear_on_startup(self, manager):
        (manager.upload_dir / "abc_left.txt").write_bytes(b"x")
        (manager.output_dir / "left-1a2b3c4d.md").write_bytes(b"x")
        extracted = manager.output_dir / "bundle-1a2b3c4d.folder"
        (extracted / "docs").mkdir(parents=True)
        (extracted / "docs" / "notes.txt").write_bytes(b"x")

        removed = manager.clear_on_startup()

        assert removed == 3
        assert list(manager.upload_dir.iterdir()) == []
        assert list(manager.output_dir.iterdir()) == []

    def test_resolve_rejects_escaping_names(self, manager):
        with pytest.raises(ArtifactNotFoundError):
            manager.resolve("../secrets.txt")
        assert manager.delete_artifact("../secrets.txt") is False
