"""
In-memory storage for podcast jobs.

Provides thread-safe operations for the job queue. Records live only as long
as the process does; a restart loses every job.
"""

import copy
import threading
import time
from typing import Optional, List, Dict, Any

from .models import (
    PodcastJob,
    JobStatus,
    JobID,
    SubmissionInput,
    CompletedResult,
    FailedResult,
    TRANSITIONS,
)


class JobNotFoundError(KeyError):
    """Raised when a job id is not (or no longer) in the store."""

    def __init__(self, job_id: JobID):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self):
        return f"Job not found: {self.job_id}"


class JobStateError(Exception):
    """Raised when an update would break the job state machine."""


# Fields the worker may change through apply_update()
UPDATABLE_FIELDS = frozenset({
    'status', 'progress', 'current_step', 'started_at', 'completed_at', 'outcome',
})

MAX_LOG_ENTRIES = 500


class JobStore:
    """
    Keyed holder of all known PodcastJobs.

    Features:
    - One lock around the internal map; never held during pipeline I/O
    - Reads return snapshots, so callers can't mutate stored records
    - Atomic claim of the next queued job (single-flight gate)
    - State machine checks on every write
    """

    def __init__(self, max_log_entries: int = MAX_LOG_ENTRIES):
        self._jobs: Dict[JobID, PodcastJob] = {}
        self._lock = threading.Lock()
        self.max_log_entries = max_log_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # Job CRUD Operations

    def create(self, submission: SubmissionInput) -> PodcastJob:
        """
        Create a new queued job.

        Args:
            submission: Validated submission payload

        Returns:
            Snapshot of the created job
        """
        with self._lock:
            job = PodcastJob(submission=submission)
            while job.job_id in self._jobs:
                job = PodcastJob(submission=submission)
            self._jobs[job.job_id] = job
            return copy.deepcopy(job)

    def get(self, job_id: JobID) -> PodcastJob:
        """
        Retrieve a job by ID.

        Raises:
            JobNotFoundError: If the id is unknown
        """
        with self._lock:
            return copy.deepcopy(self._require(job_id))

    def find(self, job_id: JobID) -> Optional[PodcastJob]:
        """Like get(), but returns None for unknown ids."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def apply_update(self, job_id: JobID, **fields: Any) -> PodcastJob:
        """
        Merge a partial update into a job.

        Args:
            job_id: Job to update
            **fields: Subset of UPDATABLE_FIELDS

        Returns:
            Snapshot of the updated job

        Raises:
            JobNotFoundError: If the id is unknown
            JobStateError: If the job is terminal, the status move is not
                allowed, or progress would go backwards
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self._lock:
            job = self._require(job_id)
            self._check_update(job, fields)

            for name, value in fields.items():
                setattr(job, name, value)

            return copy.deepcopy(job)

    def update_progress(
        self,
        job_id: JobID,
        progress: int,
        current_step: Optional[str] = None
    ) -> PodcastJob:
        """Record a progress checkpoint and the active step label."""
        return self.apply_update(job_id, progress=progress, current_step=current_step)

    def delete(self, job_id: JobID) -> bool:
        """Remove a job. Returns False if it was already gone."""
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    # Queries

    def list_all(self) -> List[PodcastJob]:
        """All jobs in creation order."""
        with self._lock:
            jobs = list(self._jobs.values())
            return copy.deepcopy(jobs)

    def list_by_submitter(self, user_id: str) -> List[PodcastJob]:
        """
        Jobs created by one submitter, newest first.

        Args:
            user_id: Submitter identity

        Returns:
            List of PodcastJob snapshots
        """
        with self._lock:
            jobs = [j for j in reversed(list(self._jobs.values())) if j.user_id == user_id]
            return copy.deepcopy(jobs)

    def list_by_status(self, status: JobStatus) -> List[PodcastJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.status == status]
            return copy.deepcopy(jobs)

    # Queue Operations (Atomic)

    def claim_next(self) -> Optional[PodcastJob]:
        """
        Claim the oldest queued job and mark it as processing.

        This is the critical method for the worker. It returns None while any
        other job is processing, so at most one job is ever in flight.
        "Oldest" is insertion order, which matches created_at even when two
        submissions share a clock tick.

        Returns:
            Snapshot of the claimed job or None
        """
        with self._lock:
            oldest = None
            for job in self._jobs.values():
                if job.status == JobStatus.PROCESSING:
                    return None
                if oldest is None and job.status == JobStatus.QUEUED:
                    oldest = job

            if oldest is None:
                return None

            job = oldest
            job.status = JobStatus.PROCESSING
            job.started_at = time.time()
            job.progress = 0
            job.current_step = None

            return copy.deepcopy(job)

    def complete(
        self,
        job_id: JobID,
        result: CompletedResult,
        current_step: Optional[str] = None
    ) -> PodcastJob:
        """Mark a processing job as completed with its result."""
        fields = {
            'status': JobStatus.COMPLETED,
            'progress': 100,
            'outcome': result,
            'completed_at': time.time(),
        }
        if current_step is not None:
            fields['current_step'] = current_step
        return self.apply_update(job_id, **fields)

    def fail(self, job_id: JobID, failure: FailedResult) -> PodcastJob:
        """Mark a processing job as failed. Progress stays where it stopped."""
        return self.apply_update(
            job_id,
            status=JobStatus.FAILED,
            outcome=failure,
            completed_at=time.time(),
        )

    # Job Log Operations

    def add_log(
        self,
        job_id: JobID,
        level: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Add a log entry for a job.

        Logging is allowed on terminal jobs; it is retention bookkeeping, not
        job state. Unknown ids are ignored since the job may have been swept.
        """
        entry = {
            'timestamp': time.time(),
            'level': level,
            'message': message,
            'metadata': copy.deepcopy(metadata) if metadata else None,
        }

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.logs.append(entry)
            if len(job.logs) > self.max_log_entries:
                del job.logs[:len(job.logs) - self.max_log_entries]

    def get_logs(
        self,
        job_id: JobID,
        level: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Get log entries for a job, newest first.

        Args:
            job_id: Job ID
            level: Filter by log level (None for all)
            limit: Maximum number of entries to return
        """
        with self._lock:
            logs = list(self._require(job_id).logs)

        if level is not None:
            logs = [entry for entry in logs if entry['level'] == level]

        logs.reverse()
        if limit is not None:
            logs = logs[:limit]

        return copy.deepcopy(logs)

    # Statistics

    def get_statistics(self) -> Dict[str, int]:
        """
        Get job queue statistics.

        Returns:
            Dictionary with the total and a count per status
        """
        with self._lock:
            statuses = [job.status for job in self._jobs.values()]

        stats = {'total': len(statuses)}
        for status in JobStatus:
            stats[status.value] = sum(1 for s in statuses if s == status)
        return stats

    # Cleanup Operations

    def sweep(self, max_age: float, now: Optional[float] = None) -> int:
        """
        Delete every job older than max_age seconds, whatever its status.

        Args:
            max_age: Retention window in seconds
            now: Reference time (defaults to time.time())

        Returns:
            Number of jobs removed
        """
        cutoff = (time.time() if now is None else now) - max_age

        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
            for job_id in expired:
                del self._jobs[job_id]

        return len(expired)

    def clear(self):
        with self._lock:
            self._jobs.clear()

    # Internals (call with the lock held)

    def _require(self, job_id: JobID) -> PodcastJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _processing_id(self) -> Optional[JobID]:
        for job in self._jobs.values():
            if job.status == JobStatus.PROCESSING:
                return job.job_id
        return None

    def _check_update(self, job: PodcastJob, fields: Dict[str, Any]):
        if job.status.is_terminal:
            raise JobStateError(
                f"Job {job.job_id} is {job.status.value}; terminal jobs are write-once"
            )

        new_status = fields.get('status')
        if new_status is not None and new_status != job.status:
            new_status = JobStatus(new_status)
            fields['status'] = new_status
            if new_status not in TRANSITIONS[job.status]:
                raise JobStateError(
                    f"Job {job.job_id}: cannot move from {job.status.value} to {new_status.value}"
                )
            if new_status == JobStatus.PROCESSING:
                busy = self._processing_id()
                if busy is not None:
                    raise JobStateError(
                        f"Job {job.job_id}: job {busy} is already processing"
                    )
                fields.setdefault('started_at', time.time())
        else:
            new_status = job.status

        if 'progress' in fields:
            progress = max(0, min(100, int(fields['progress'])))
            if progress < job.progress:
                raise JobStateError(
                    f"Job {job.job_id}: progress cannot go back from {job.progress} to {progress}"
                )
            if progress == 100 and new_status != JobStatus.COMPLETED:
                raise JobStateError(f"Job {job.job_id}: progress 100 is reserved for completion")
            fields['progress'] = progress

        outcome = fields.get('outcome')
        if outcome is not None:
            expected = {
                JobStatus.COMPLETED: CompletedResult,
                JobStatus.FAILED: FailedResult,
            }.get(new_status)
            if expected is None or not isinstance(outcome, expected):
                raise JobStateError(
                    f"Job {job.job_id}: outcome {type(outcome).__name__} "
                    f"does not match status {new_status.value}"
                )
        elif new_status.is_terminal:
            raise JobStateError(f"Job {job.job_id}: terminal status requires an outcome")
