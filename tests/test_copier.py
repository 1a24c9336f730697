"""
Tests for the transfer worker: copy-once semantics, recursion and failures
"""
import logging
import shutil

import pytest

from relay_sync.copier import TargetFolderMissing, TransferError, TransferRecord, TransferWorker
from relay_sync.ledger import TransferLedger

from .utils import CountingCopy, read_record, wait_until


class TestSingleFile:

    def test_copies_new_file(self, worker, source_dir, target_dir, record_file):
        src = source_dir / "a.txt"
        src.write_text("hello")

        worker.handle_path(src)

        assert (target_dir / "a.txt").read_text() == "hello"
        assert read_record(record_file) == ["a.txt"]
        assert worker.stats.total_copied == 1

    def test_second_call_is_noop(self, worker, source_dir, record_file, monkeypatch):
        copy = CountingCopy()
        monkeypatch.setattr(shutil, "copy2", copy)
        src = source_dir / "a.txt"
        src.write_text("hello")

        worker.handle_path(src)
        worker.handle_path(src)

        assert copy.calls == ["a.txt"]
        assert read_record(record_file) == ["a.txt"]
        assert worker.stats.total_skipped == 1

    def test_restart_does_not_recopy(self, source_dir, target_dir, record_file, monkeypatch):
        src = source_dir / "a.txt"
        src.write_text("hello")
        first = TransferLedger(record_file)
        first.load()
        TransferWorker(target_dir, first).handle_path(src)

        copy = CountingCopy()
        monkeypatch.setattr(shutil, "copy2", copy)
        second = TransferLedger(record_file)
        second.load()
        TransferWorker(target_dir, second).handle_path(src)

        assert copy.calls == []
        assert read_record(record_file) == ["a.txt"]

    def test_overwrites_existing_destination(self, worker, source_dir, target_dir):
        (target_dir / "a.txt").write_text("stale")
        src = source_dir / "a.txt"
        src.write_text("fresh")

        worker.handle_path(src)

        assert (target_dir / "a.txt").read_text() == "fresh"

    def test_same_name_last_copy_wins(self, source_dir, target_dir, record_file):
        first = source_dir / "one" / "x.txt"
        second = source_dir / "two" / "x.txt"
        first.parent.mkdir()
        second.parent.mkdir()
        first.write_text("first")
        second.write_text("second")

        TransferWorker(target_dir, TransferLedger(record_file)).handle_path(first)
        # A fresh in-memory ledger forgets the name, so the second file is copied over it.
        TransferWorker(target_dir, TransferLedger(record_file)).handle_path(second)

        assert (target_dir / "x.txt").read_text() == "second"
        assert read_record(record_file) == ["x.txt"]

    def test_missing_path_raises_not_found(self, worker, source_dir, record_file):
        with pytest.raises(FileNotFoundError):
            worker.handle_path(source_dir / "ghost.txt")
        assert not record_file.exists()

    def test_copy_failure_leaves_ledger_alone(self, worker, source_dir, target_dir, monkeypatch):
        monkeypatch.setattr(shutil, "copy2", CountingCopy(fail_names={"a.txt"}))
        src = source_dir / "a.txt"
        src.write_text("hello")

        with pytest.raises(PermissionError):
            worker.handle_path(src)

        assert "a.txt" not in worker.ledger
        assert not (target_dir / "a.txt").exists()
        assert worker.stats.total_failed == 1

    def test_retries_transient_failure(self, source_dir, target_dir, ledger, monkeypatch):
        copy = CountingCopy(failures=1)
        monkeypatch.setattr(shutil, "copy2", copy)
        worker = TransferWorker(target_dir, ledger, retry_count=2, retry_delay=0)
        src = source_dir / "a.txt"
        src.write_text("hello")

        worker.handle_path(src)

        assert copy.calls == ["a.txt", "a.txt"]
        assert (target_dir / "a.txt").read_text() == "hello"
        assert "a.txt" in ledger

    def test_ledger_save_failure_is_reported(self, tmp_path, source_dir, target_dir):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        ledger = TransferLedger(blocker / "transfers.json")
        worker = TransferWorker(target_dir, ledger)
        src = source_dir / "a.txt"
        src.write_text("hello")

        with pytest.raises(OSError):
            worker.handle_path(src)
        assert (target_dir / "a.txt").exists()

    def test_on_transfer_callback(self, source_dir, target_dir, ledger):
        seen: list[TransferRecord] = []
        worker = TransferWorker(target_dir, ledger, on_transfer=seen.append)
        src = source_dir / "a.txt"
        src.write_text("12345")

        worker.handle_path(src)

        assert len(seen) == 1
        assert seen[0].success
        assert seen[0].size_bytes == 5
        assert seen[0].destination == str(target_dir / "a.txt")
        assert seen[0].duration >= 0.0

    def test_stats_summary(self, worker, source_dir):
        src = source_dir / "a.txt"
        src.write_text("12345")

        worker.handle_path(src)
        worker.handle_path(src)

        assert worker.stats.summary() == "1 copied (5 bytes), 1 skipped, 0 failed"

    def test_name_locks_released_once_recorded(self, worker, source_dir):
        src = source_dir / "a.txt"
        src.write_text("hello")

        worker.handle_path(src)
        assert worker._name_locks == {}

        worker.handle_path(src)
        assert worker._name_locks == {}

    def test_missing_target_folder_is_not_a_vanished_source(self, worker, source_dir, target_dir):
        src = source_dir / "a.txt"
        src.write_text("hello")
        target_dir.rmdir()

        with pytest.raises(TargetFolderMissing) as info:
            worker.handle_path(src)

        assert not isinstance(info.value, FileNotFoundError)
        assert info.value.folder == target_dir
        assert "a.txt" not in worker.ledger


class TestDirectories:

    def test_recurses_and_flattens(self, worker, source_dir, target_dir, record_file):
        deep = source_dir / "sub" / "deeper"
        deep.mkdir(parents=True)
        (source_dir / "sub" / "b.txt").write_text("b")
        (deep / "c.txt").write_text("c")

        worker.handle_path(source_dir / "sub")

        assert (target_dir / "b.txt").read_text() == "b"
        assert (target_dir / "c.txt").read_text() == "c"
        assert not (target_dir / "sub").exists()
        assert set(read_record(record_file)) == {"b.txt", "c.txt"}

    def test_child_failure_does_not_stop_siblings(self, worker, source_dir, target_dir, monkeypatch):
        monkeypatch.setattr(shutil, "copy2", CountingCopy(fail_names={"bad.txt"}))
        sub = source_dir / "sub"
        (sub / "inner").mkdir(parents=True)
        (sub / "bad.txt").write_text("x")
        (sub / "good.txt").write_text("y")
        (sub / "inner" / "also_good.txt").write_text("z")

        with pytest.raises(TransferError) as info:
            worker.handle_path(sub)

        assert [p.name for p, _ in info.value.failures] == ["bad.txt"]
        assert (target_dir / "good.txt").exists()
        assert (target_dir / "also_good.txt").exists()
        assert worker.ledger.names == {"good.txt", "also_good.txt"}


class TestDispatch:

    def test_dispatch_runs_in_background(self, worker, source_dir, target_dir):
        src = source_dir / "a.txt"
        src.write_text("hello")

        thread = worker.dispatch(src)
        thread.join(timeout=10)

        assert (target_dir / "a.txt").read_text() == "hello"

    def test_dispatch_swallows_errors(self, worker, source_dir):
        thread = worker.dispatch(source_dir / "ghost.txt")
        thread.join(timeout=10)
        assert not thread.is_alive()
        assert worker.active_transfers == 0

    def test_dispatch_logs_missing_target_folder(self, worker, source_dir, target_dir, caplog):
        src = source_dir / "a.txt"
        src.write_text("hello")
        target_dir.rmdir()

        with caplog.at_level(logging.WARNING, logger="relay_sync.copier"):
            worker.dispatch(src).join(timeout=10)

        messages = [r.getMessage() for r in caplog.records]
        assert any("target folder does not exist" in m for m in messages)
        assert not any("vanished" in m for m in messages)

    def test_concurrent_same_name_copies_once(self, worker, source_dir, record_file, monkeypatch):
        copy = CountingCopy()
        monkeypatch.setattr(shutil, "copy2", copy)
        src = source_dir / "a.txt"
        src.write_text("hello")

        threads = [worker.dispatch(src) for _ in range(8)]
        for thread in threads:
            thread.join(timeout=10)

        assert copy.calls == ["a.txt"]
        assert wait_until(lambda: worker.active_transfers == 0)
        assert read_record(record_file) == ["a.txt"]
