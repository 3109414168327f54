import pytest

from booking.snapshots import InvalidSnapshotName, SnapshotStore, slugify


def test_saved_snapshots_follow_the_naming_pattern(tmp_path):
    store = SnapshotStore(tmp_path / "shots")

    filename = store.save("After Login!", b"png-bytes")

    assert filename.startswith("screenshot-after-login-")
    assert filename.endswith(".png")
    assert store.path_for(filename).read_bytes() == b"png-bytes"
    assert [entry["filename"] for entry in store.list()] == [filename]


def test_listing_ignores_foreign_files(tmp_path):
    (tmp_path / "notes.txt").write_text("x")
    (tmp_path / "screenshot-abort-1700000000000.png").write_bytes(b"1")
    store = SnapshotStore(tmp_path)

    assert [entry["filename"] for entry in store.list()] == ["screenshot-abort-1700000000000.png"]


@pytest.mark.parametrize("name", ["../etc/passwd", "screenshot-abort.png", "abort-1.png", "screenshot--1.png"])
def test_invalid_names_are_rejected(tmp_path, name):
    with pytest.raises(InvalidSnapshotName):
        SnapshotStore(tmp_path).path_for(name)


def test_unknown_snapshot_is_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        SnapshotStore(tmp_path).path_for("screenshot-abort-1.png")


def test_missing_directory_lists_nothing(tmp_path):
    assert SnapshotStore(tmp_path / "absent").list() == []
    assert slugify("") == "checkpoint"
    assert SnapshotStore(tmp_path).filename_for("before slot", 42) == "screenshot-before-slot-42.png"
