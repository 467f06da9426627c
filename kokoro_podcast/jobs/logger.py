"""
Structured logging for jobs.

Entries are kept on the job record (so pollers can read them) and mirrored to
a standard Python logger.
"""

import logging
import threading
import traceback
from typing import Optional, Dict, Any

from .models import JobID
from .storage import JobStore


class JobLogger:
    """
    Logger for job-specific structured logging.

    Features:
    - Thread-safe logging operations
    - Entries stored on the job via JobStore
    - Structured metadata support
    - Standard Python logging integration
    """

    # Log levels
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def __init__(self, job_id: JobID, store: JobStore):
        """
        Initialize logger for a specific job.

        Args:
            job_id: Job ID to log for
            store: JobStore holding the job
        """
        self.job_id = job_id
        self.store = store
        self._lock = threading.Lock()

        self._py_logger = logging.getLogger(f"kokoro_podcast.job.{job_id}")

    def _log(
        self,
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        with self._lock:
            self.store.add_log(
                job_id=self.job_id,
                level=level,
                message=message,
                metadata=metadata
            )

            py_level = self._level_to_py_level(level)
            if self._py_logger.isEnabledFor(py_level):
                extra_msg = f" [{metadata}]" if metadata else ""
                self._py_logger.log(py_level, f"{message}{extra_msg}")

    @staticmethod
    def _level_to_py_level(level: str) -> int:
        """Convert string level to Python logging level."""
        return {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }.get(level, logging.INFO)

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        self._log(self.DEBUG, message, metadata)

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        self._log(self.INFO, message, metadata)

    def warning(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        self._log(self.WARNING, message, metadata)

    def error(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        self._log(self.ERROR, message, metadata)

    def critical(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        self._log(self.CRITICAL, message, metadata)

    def log_progress(self, progress: int, step: str):
        """Log a progress checkpoint."""
        self.info(f"{progress}% - {step}", metadata={"progress": progress, "step": step})

    def log_stage_complete(self, stage: str, duration_seconds: float, **details: Any):
        """Log completion of a pipeline stage."""
        self.info(
            f"Stage {stage} finished in {duration_seconds:.1f}s",
            metadata={"stage": stage, "duration_seconds": duration_seconds, **details}
        )

    def log_error_with_context(self, error: Exception, context: str):
        """
        Log an error with full context.

        Args:
            error: Exception that occurred
            context: Description of what was being done
        """
        self.error(
            f"Error during {context}: {type(error).__name__}: {error}",
            metadata={
                "error_type": type(error).__name__,
                "error_message": str(error),
                "context": context,
                "traceback": traceback.format_exc()
            }
        )

    def get_recent_logs(self, limit: int = 50) -> list:
        """Get recent log entries for this job, newest first."""
        return self.store.get_logs(self.job_id, limit=limit)

    def get_error_logs(self) -> list:
        """Get all error and critical logs for this job, newest first."""
        error_logs = self.store.get_logs(self.job_id, level=self.ERROR)
        critical_logs = self.store.get_logs(self.job_id, level=self.CRITICAL)

        all_errors = error_logs + critical_logs
        all_errors.sort(key=lambda x: x['timestamp'], reverse=True)

        return all_errors
