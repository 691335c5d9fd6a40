"""Tests for the per-run log file."""

import gzip
import logging
import os
import time

from dockship.runlog import RunLog


class TestRunLog:
    """Test RunLog start, archive and expiry."""

    def test_start_creates_timestamped_file(self, tmp_path):
        """Test the log file is created under the log directory."""
        run_log = RunLog.start(tmp_path / "logs", console=False)
        logging.getLogger("dockship.test").info("hello run log")
        run_log.close()

        assert run_log.path.parent == tmp_path / "logs"
        assert run_log.path.name.startswith("deploy_")
        assert "[INFO] hello run log" in run_log.path.read_text()

    def test_archive_keeps_original(self, tmp_path):
        """Test archiving compresses next to the readable log."""
        run_log = RunLog.start(tmp_path, console=False)
        logging.getLogger("dockship.test").warning("archived line")

        archive = run_log.archive()

        assert archive == run_log.path.with_name(run_log.path.name + ".gz")
        assert run_log.path.exists()
        with gzip.open(archive, "rt") as f:
            assert "archived line" in f.read()

    def test_archive_detaches_handlers(self, tmp_path):
        """Test nothing is written to the log after archival."""
        run_log = RunLog.start(tmp_path, console=False)
        run_log.archive()
        logging.getLogger("dockship.test").error("after archive")

        assert "after archive" not in run_log.path.read_text()

    def test_expire_old_archives(self, tmp_path):
        """Test archives older than the retention period are removed."""
        old = tmp_path / "deploy_20200101_000000.log.gz"
        old.write_bytes(b"")
        stale = time.time() - 40 * 86400
        os.utime(old, (stale, stale))
        recent = tmp_path / "deploy_20990101_000000.log.gz"
        recent.write_bytes(b"")

        run_log = RunLog(tmp_path / "deploy_x.log", retention_days=30)
        removed = run_log.expire_archives()

        assert removed == [old]
        assert not old.exists()
        assert recent.exists()

    def test_archive_without_log(self, tmp_path):
        """Test archiving a log that was never written returns None."""
        assert RunLog(tmp_path / "deploy_none.log").archive() is None
