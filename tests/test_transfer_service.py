# tests/test_transfer_service.py
# Tests for TransferService: ordering, progress stream, collisions, failures, cancel

import errno
import os
import threading

import pytest

from config import TransferConfig
from services.duplicate_check_service import DuplicateCheckService
from services.errors import TransferError
from services.progress_events import ByteProgress, FileProgress, StatusMessage, parse_progress_message
from services.transfer_service import COPIED, FAILED, SKIPPED_DUPLICATE, TransferService

SMALL_CHUNKS = TransferConfig(
    chunk_size=1024,
    progress_min_interval_bytes=1024,
    progress_max_interval_bytes=4096,
    fsync=False,
)


def run(service, sources, dest, cancel_event=None):
    messages = []
    result = service.transfer([str(s) for s in sources], str(dest), messages.append, cancel_event)
    return result, messages


def byte_events_per_file(messages):
    """Split PROGRESS_BYTES events into one list per file (a PROGRESS event closes a file)."""
    files, current = [], []
    for message in messages:
        event = parse_progress_message(message)
        if isinstance(event, ByteProgress):
            current.append(event)
        elif isinstance(event, FileProgress) and event.done > 0:
            files.append(current)
            current = []
    return files


class TestCopy:

    def test_copies_in_order(self, device_root, destination, make_file):
        sources = [make_file(device_root / f"IMG_000{i}.jpg", 3000 + i) for i in range(1, 4)]
        result, _ = run(TransferService(SMALL_CHUNKS), sources, destination)

        assert [o.status for o in result.outcomes] == [COPIED, COPIED, COPIED]
        assert [o.source_path for o in result.outcomes] == [str(s) for s in sources]
        for source in sources:
            copied = destination / source.name
            assert copied.read_bytes() == source.read_bytes()
        assert (result.copied_count, result.skipped_count, result.failed_count) == (3, 0, 0)
        assert result.bytes_copied == sum(os.path.getsize(s) for s in sources)

    def test_creates_missing_destination(self, device_root, temp_dir, make_file):
        source = make_file(device_root / "a.jpg", 10)
        dest = temp_dir / "new" / "nested"
        result, _ = run(TransferService(SMALL_CHUNKS), [source], dest)

        assert result.copied_count == 1
        assert (dest / "a.jpg").exists()

    def test_preserves_modification_time(self, device_root, destination, make_file):
        source = make_file(device_root / "a.jpg", 10)
        os.utime(source, (1_600_000_000, 1_600_000_000))
        run(TransferService(SMALL_CHUNKS), [source], destination)

        assert int(os.path.getmtime(destination / "a.jpg")) == 1_600_000_000

    def test_no_part_files_left(self, device_root, destination, make_file):
        sources = [make_file(device_root / f"{i}.jpg", 5000) for i in range(3)]
        run(TransferService(SMALL_CHUNKS), sources, destination)

        assert not [p for p in os.listdir(destination) if p.endswith(".camporter-part")]

    def test_empty_selection(self, destination):
        result, messages = run(TransferService(SMALL_CHUNKS), [], destination)
        assert result.outcomes == []
        assert messages[0] == "PROGRESS:0:0"
        assert messages[-1] == "Import complete: 0 copied, 0 skipped, 0 failed"


class TestProgressStream:

    def test_byte_progress_is_monotonic_and_completes_once(self, device_root, destination, make_file):
        sources = [
            make_file(device_root / "big.mov", 50_000),
            make_file(device_root / "small.jpg", 700),
            make_file(device_root / "empty.jpg", 0),
        ]
        result, messages = run(TransferService(SMALL_CHUNKS), sources, destination)
        assert result.copied_count == 3

        per_file = byte_events_per_file(messages)
        assert len(per_file) == 3
        for events, source in zip(per_file, sources):
            size = os.path.getsize(source)
            copied = [e.copied for e in events]
            assert copied == sorted(copied)
            assert all(e.total == size for e in events)
            assert sum(1 for e in events if e.copied == e.total) == 1
            assert events[-1] == ByteProgress(size, size)

        assert per_file[2] == [ByteProgress(0, 0)]
        # Throttled: a 50 KB file at a 4 KB interval, not one event per 1 KB chunk
        assert len(per_file[0]) <= 50_000 // 4096 + 2

    def test_file_progress_counts_every_outcome(self, device_root, destination, make_file):
        make_file(destination / "dup.jpg", 100)
        sources = [
            make_file(device_root / "dup.jpg", 100),
            device_root / "missing.jpg",
            make_file(device_root / "new.jpg", 100),
        ]
        result, messages = run(TransferService(SMALL_CHUNKS), sources, destination)

        counts = [e for e in map(parse_progress_message, messages) if isinstance(e, FileProgress)]
        assert counts == [FileProgress(i, 3) for i in range(4)]
        assert [o.status for o in result.outcomes] == [SKIPPED_DUPLICATE, FAILED, COPIED]

    def test_status_lines(self, device_root, destination, make_file):
        make_file(destination / "dup.jpg", 100)
        make_file(destination / "photo.jpg", 500)
        sources = [
            make_file(device_root / "dup.jpg", 100),
            device_root / "missing.jpg",
            make_file(device_root / "photo.jpg", 900),
            make_file(device_root / "new.jpg", 10),
        ]
        _, messages = run(TransferService(SMALL_CHUNKS), sources, destination)
        status = [m for m in messages if isinstance(parse_progress_message(m), StatusMessage)]

        assert "Skipped: dup.jpg (already exists)" in status
        assert f"Skipped: {device_root / 'missing.jpg'} (file not found)" in status
        assert "Copying: photo.jpg" in status
        assert "Copied: photo.jpg as photo_1.jpg" in status
        assert "Copied: new.jpg" in status
        assert status[-1] == "Import complete: 2 copied, 1 skipped, 1 failed"


class TestCollisions:

    def test_same_name_different_size_is_renamed(self, device_root, destination, make_file):
        existing = make_file(destination / "photo.jpg", 500, fill=b"e")
        source = make_file(device_root / "photo.jpg", 1200, fill=b"s")

        result, _ = run(TransferService(SMALL_CHUNKS), [source], destination)

        outcome = result.outcomes[0]
        assert outcome.status == COPIED
        assert outcome.destination_path == str(destination / "photo_1.jpg")
        assert outcome.renamed
        assert existing.read_bytes() == b"e" * 500
        assert (destination / "photo_1.jpg").read_bytes() == source.read_bytes()

    def test_picks_smallest_free_suffix(self, device_root, destination, make_file):
        make_file(destination / "photo.jpg", 500)
        make_file(destination / "photo_1.jpg", 500)
        make_file(destination / "photo_3.jpg", 500)
        source = make_file(device_root / "photo.jpg", 1200)

        result, _ = run(TransferService(SMALL_CHUNKS), [source], destination)
        assert result.outcomes[0].destination_path == str(destination / "photo_2.jpg")

    def test_same_name_same_size_is_skipped(self, device_root, destination, make_file):
        existing = make_file(destination / "IMG_0001.jpg", 2048, fill=b"e")
        source = make_file(device_root / "IMG_0001.jpg", 2048, fill=b"s")

        result, _ = run(TransferService(SMALL_CHUNKS), [source], destination)

        assert result.outcomes[0].status == SKIPPED_DUPLICATE
        assert existing.read_bytes() == b"e" * 2048
        assert sorted(os.listdir(destination)) == ["IMG_0001.jpg"]

    def test_name_taken_during_copy_is_not_overwritten(self, device_root, destination, make_file, monkeypatch):
        source = make_file(device_root / "race.jpg", 3000, fill=b"s")
        service = TransferService(SMALL_CHUNKS)
        real_copy = service._copy_file

        def copy_then_collide(*args, **kwargs):
            copied = real_copy(*args, **kwargs)
            make_file(destination / "race.jpg", 10, fill=b"o")
            return copied

        monkeypatch.setattr(service, "_copy_file", copy_then_collide)
        result, _ = run(service, [source], destination)

        assert (destination / "race.jpg").read_bytes() == b"o" * 10
        assert result.outcomes[0].destination_path == str(destination / "race_1.jpg")

    def test_skips_exactly_what_the_duplicate_check_flags(self, device_root, destination, make_file):
        make_file(destination / "IMG_0001.JPG", 2048)
        make_file(destination / "IMG_0002.JPG", 500)
        (destination / "MVI_0003.MOV").mkdir()
        sources = [
            make_file(device_root / "IMG_0001.JPG", 2048),
            make_file(device_root / "IMG_0002.JPG", 1200),
            make_file(device_root / "MVI_0003.MOV", 4096),
            make_file(device_root / "IMG_0004.JPG", 700),
        ]
        flags = DuplicateCheckService().check_existing(
            [(str(s), s.stat().st_size) for s in sources], str(destination))

        result, _ = run(TransferService(SMALL_CHUNKS), sources, destination)

        assert flags == [True, False, False, False]
        assert [o.status == SKIPPED_DUPLICATE for o in result.outcomes] == flags
        assert result.outcomes[2].destination_path == str(destination / "MVI_0003_1.MOV")


class TestFailures:

    def test_second_file_fails_others_continue(self, device_root, destination, make_file, monkeypatch):
        sources = [make_file(device_root / f"IMG_000{i}.jpg", 2000) for i in range(1, 4)]
        service = TransferService(SMALL_CHUNKS)
        real_copy = service._copy_file

        def flaky_copy(source, part_path, *args, **kwargs):
            if source == str(sources[1]):
                raise PermissionError(errno.EACCES, "Permission denied", source)
            return real_copy(source, part_path, *args, **kwargs)

        monkeypatch.setattr(service, "_copy_file", flaky_copy)
        result, messages = run(service, sources, destination)

        assert [o.status for o in result.outcomes] == [COPIED, FAILED, COPIED]
        assert result.outcomes[1].reason == TransferError.PERMISSION_DENIED
        assert not (destination / "IMG_0002.jpg").exists()
        assert any(m.startswith("Failed to copy IMG_0002.jpg:") for m in messages)

    def test_all_failed_raises_with_result(self, device_root, destination):
        sources = [device_root / "gone1.jpg", device_root / "gone2.jpg"]
        with pytest.raises(TransferError) as exc:
            run(TransferService(SMALL_CHUNKS), sources, destination)

        error = exc.value
        assert error.kind == TransferError.ALL_FAILED
        assert [o.reason for o in error.result.outcomes] == [TransferError.SOURCE_MISSING] * 2
        assert error.to_dict()["result"]["failed"] == 2

    def test_disk_full_with_nothing_fitting_aborts(self, device_root, destination, make_file, monkeypatch):
        sources = [make_file(device_root / f"{i}.mov", 4000) for i in range(3)]
        service = TransferService(SMALL_CHUNKS)

        def full_disk(*args, **kwargs):
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(service, "_copy_file", full_disk)
        monkeypatch.setattr(service, "_any_fits", lambda remaining, dest: False)

        with pytest.raises(TransferError) as exc:
            run(service, sources, destination)
        assert exc.value.kind == TransferError.DISK_FULL
        assert len(exc.value.result.outcomes) == 1

    def test_disk_full_continues_when_smaller_files_fit(self, device_root, destination, make_file, monkeypatch):
        big = make_file(device_root / "big.mov", 8000)
        small = make_file(device_root / "small.jpg", 100)
        service = TransferService(SMALL_CHUNKS)
        real_copy = service._copy_file

        def copy(source, *args, **kwargs):
            if source == str(big):
                raise OSError(errno.ENOSPC, "No space left on device")
            return real_copy(source, *args, **kwargs)

        monkeypatch.setattr(service, "_copy_file", copy)
        monkeypatch.setattr(service, "_any_fits", lambda remaining, dest: True)
        result, _ = run(service, [big, small], destination)

        assert [o.status for o in result.outcomes] == [FAILED, COPIED]
        assert result.outcomes[0].reason == TransferError.DISK_FULL

    def test_destination_is_a_file(self, device_root, temp_dir, make_file):
        source = make_file(device_root / "a.jpg", 10)
        blocker = make_file(temp_dir / "not_a_dir", 1)
        with pytest.raises(TransferError) as exc:
            run(TransferService(SMALL_CHUNKS), [source], blocker)
        assert exc.value.kind == TransferError.DESTINATION_UNWRITABLE

    def test_destination_removed_mid_transfer(self, device_root, destination, make_file, monkeypatch):
        sources = [make_file(device_root / f"{i}.jpg", 100) for i in range(3)]
        service = TransferService(SMALL_CHUNKS)
        real_one = service._transfer_one
        calls = []

        def remove_after_first(*args, **kwargs):
            outcome = real_one(*args, **kwargs)
            calls.append(outcome)
            if len(calls) == 1:
                for name in os.listdir(destination):
                    os.remove(destination / name)
                os.rmdir(destination)
            return outcome

        monkeypatch.setattr(service, "_transfer_one", remove_after_first)
        with pytest.raises(TransferError) as exc:
            run(service, sources, destination)

        assert exc.value.kind == TransferError.DESTINATION_VANISHED
        assert [o.status for o in exc.value.result.outcomes] == [COPIED]


class TestCancellation:

    def test_cancel_mid_file_removes_partial(self, device_root, destination, make_file):
        source = make_file(device_root / "long.mov", 200_000)
        cancel = threading.Event()
        messages = []

        def on_message(message):
            messages.append(message)
            if message.startswith("PROGRESS_BYTES:"):
                cancel.set()

        result = TransferService(SMALL_CHUNKS).transfer([str(source)], str(destination), on_message, cancel)

        assert result.cancelled
        assert result.outcomes[0].status == FAILED
        assert result.outcomes[0].reason == TransferError.CANCELLED
        assert os.listdir(destination) == []
        assert messages[-1].startswith("Import cancelled:")

    def test_cancel_between_files(self, device_root, destination, make_file):
        sources = [make_file(device_root / f"{i}.jpg", 100) for i in range(3)]
        cancel = threading.Event()

        def on_message(message):
            if message == "PROGRESS:1:3":
                cancel.set()

        result = TransferService(SMALL_CHUNKS).transfer([str(s) for s in sources], str(destination),
                                                        on_message, cancel)

        assert result.cancelled
        assert [o.status for o in result.outcomes] == [COPIED]
        assert sorted(os.listdir(destination)) == ["0.jpg"]

    def test_cancel_before_start(self, device_root, destination, make_file):
        cancel = threading.Event()
        cancel.set()
        result, _ = run(TransferService(SMALL_CHUNKS), [make_file(device_root / "a.jpg", 5)], destination, cancel)

        assert result.cancelled
        assert result.outcomes == []
