from datetime import datetime, timezone

import pytest

from clonewatch.errors import StorageFailure
from clonewatch.storage.evidence import BASELINE_SCREENSHOT_NAME, EvidenceStore


@pytest.mark.asyncio
async def test_screenshot_names_are_unique_per_check(tmp_path):
    store = EvidenceStore(tmp_path)
    checked_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    first = await store.save_screenshot("Evil-Bank.example", b"png-1", checked_at)
    second = await store.save_screenshot("evil-bank.example", b"png-2", checked_at)

    assert first != second
    millis = int(checked_at.timestamp() * 1000)
    assert first.startswith(f"evil_bank_example_{millis}_")
    assert first.endswith(".png")
    assert store.resolve(first).read_bytes() == b"png-1"
    assert store.get_screenshot_path(second) == store.resolve(second)


@pytest.mark.asyncio
async def test_baseline_screenshot_is_overwritten(tmp_path):
    store = EvidenceStore(tmp_path)
    await store.save_baseline_screenshot(b"old")
    name = await store.save_baseline_screenshot(b"new")

    assert name == BASELINE_SCREENSHOT_NAME
    assert (tmp_path / BASELINE_SCREENSHOT_NAME).read_bytes() == b"new"


def test_resolve_rejects_path_escape(tmp_path):
    store = EvidenceStore(tmp_path / "shots")
    with pytest.raises(ValueError):
        store.resolve("../secrets.txt")


@pytest.mark.asyncio
async def test_delete_and_missing_paths(tmp_path):
    store = EvidenceStore(tmp_path)
    name = await store.save_screenshot("a.example", b"x", datetime.now(timezone.utc))

    assert store.delete(name) is True
    assert store.delete(name) is False
    assert store.get_screenshot_path(name) is None
    assert store.get_screenshot_path(None) is None


@pytest.mark.asyncio
async def test_write_errors_become_storage_failures(tmp_path):
    store = EvidenceStore(tmp_path / "shots")
    (tmp_path / "shots").rmdir()
    (tmp_path / "shots").write_text("not a directory")

    with pytest.raises(StorageFailure):
        await store.save_baseline_screenshot(b"x")
