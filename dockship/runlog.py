"""Per-run log file and its archival at process exit."""

import gzip
import logging
import shutil
import sys
import time
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROOT_LOGGER = "dockship"


class RunLog:
    """Append-only log of one run, written through the ``dockship`` logger."""

    def __init__(self, path: Path, retention_days: int = 30) -> None:
        self.path = path
        self.retention_days = retention_days
        self._handlers: list[logging.Handler] = []

    @classmethod
    def start(
        cls,
        log_dir: Path,
        retention_days: int = 30,
        level: str = "INFO",
        console: bool = True,
    ) -> "RunLog":
        """Create ``deploy_<timestamp>.log`` and attach handlers for it."""
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_log = cls(log_dir / f"deploy_{timestamp}.log", retention_days)

        formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
        file_handler = logging.FileHandler(run_log.path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        run_log._handlers.append(file_handler)
        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            run_log._handlers.append(console_handler)

        logger = logging.getLogger(ROOT_LOGGER)
        logger.setLevel(level)
        for handler in run_log._handlers:
            logger.addHandler(handler)
        return run_log

    def close(self) -> None:
        logger = logging.getLogger(ROOT_LOGGER)
        for handler in self._handlers:
            logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()

    def archive(self) -> Path | None:
        """Compress the log next to the original and expire old archives.

        The human-readable log is kept. Archives older than
        ``retention_days`` are deleted.

        Returns:
            Path of the new archive, or None if there was no log to archive.
        """
        self.close()
        if not self.path.exists():
            return None

        archive_path = self.path.with_name(self.path.name + ".gz")
        with open(self.path, "rb") as src, gzip.open(archive_path, "wb") as dst:
            shutil.copyfileobj(src, dst)

        self.expire_archives()
        return archive_path

    def expire_archives(self) -> list[Path]:
        cutoff = time.time() - self.retention_days * 86400
        removed = []
        for old in self.path.parent.glob("deploy_*.log.gz"):
            if old.stat().st_mtime < cutoff:
                old.unlink(missing_ok=True)
                removed.append(old)
        return removed
