"""
High-level job management API.

Owns the job store and the background threads (worker, webhook delivery,
retention sweep) and is the entry point for submissions and status queries.
"""

import logging
from typing import Optional, List, Dict, Any

from ..config import ServiceConfig
from . import __version__
from .models import (
    PodcastJob,
    PodcastFormat,
    SubmissionInput,
    JobStatus,
    JobID,
)
from .storage import JobStore
from .logger import JobLogger
from .pipeline import PipelineStages
from .worker import PodcastWorker
from .notifier import WebhookNotifier
from .retention import RetentionSweeper

log = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 10


def default_stages(config: ServiceConfig) -> PipelineStages:
    """
    Build the production pipeline from configuration.

    Publishes to S3 when a bucket is configured, otherwise to a local directory.
    """
    from ..assembly import AudioAssembler
    from ..core import KokoroEngine
    from ..database import PodcastDatabase
    from ..publish import S3Publisher, LocalPublisher
    from ..script import ScriptGenerator
    from .models import Speaker

    if config.s3_bucket:
        publisher = S3Publisher(config.s3_bucket, region=config.aws_region)
    else:
        publisher = LocalPublisher(config.output_dir)

    return PipelineStages(
        script=ScriptGenerator(
            api_key=config.openai_api_key or None,
            model=config.openai_model,
            base_url=config.openai_base_url,
            temperature=config.script_temperature,
            timeout=config.script_timeout,
        ),
        synthesis=KokoroEngine(
            model_path=config.model_path,
            voices_path=config.voices_path,
            voices={Speaker.HOST: config.host_voice, Speaker.GUEST: config.guest_voice},
            speed=config.speech_speed,
            lang=config.lang,
            use_gpu=config.use_gpu,
        ),
        assembly=AudioAssembler(output_format=config.output_format),
        publisher=publisher,
        database=PodcastDatabase(config.db_path),
    )


def validate_submission(
    note_id: str,
    note_content: str,
    user_id: str,
    duration: Any
) -> SubmissionInput:
    """
    Check a submission before any job exists.

    Raises:
        ValueError: With a message naming the first invalid field
    """
    if not isinstance(note_id, str) or not note_id.strip():
        raise ValueError("noteId is required")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValueError("userId is required")
    if not isinstance(note_content, str) or len(note_content.strip()) < MIN_CONTENT_LENGTH:
        raise ValueError(f"noteContent must be at least {MIN_CONTENT_LENGTH} characters")
    try:
        podcast_format = PodcastFormat(duration)
    except ValueError:
        raise ValueError('duration must be either "short" or "long"')

    return SubmissionInput(
        note_id=note_id.strip(),
        note_content=note_content,
        user_id=user_id.strip(),
        duration=podcast_format,
    )


class JobManager:
    """
    High-level API for podcast jobs.

    Example:
        with JobManager(ServiceConfig.from_env()) as manager:
            job = manager.submit_job("n1", notes, "u1", "short")
            print(manager.get_job(job.job_id).to_dict())
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        stages: Optional[PipelineStages] = None,
        store: Optional[JobStore] = None,
        notifier: Optional[WebhookNotifier] = None
    ):
        """
        Initialize job manager. Nothing runs until start().

        Args:
            config: Service configuration (None loads it from the environment)
            stages: Pipeline collaborators (None builds the production ones)
            store: Job store (None creates an empty one)
            notifier: Webhook notifier (None builds one from config)
        """
        self.config = config or ServiceConfig.from_env()
        self.store = store if store is not None else JobStore()
        self.stages = stages or default_stages(self.config)

        self.worker = PodcastWorker(self.store, self.stages, poll_interval=self.config.poll_interval)
        self.notifier = notifier or WebhookNotifier(
            url=self.config.webhook_url,
            secret=self.config.webhook_secret,
            timeout=self.config.webhook_timeout,
            user_agent=f"kokoro-podcast/{__version__}",
        )
        self.worker.add_listener(self.notifier.handle)

        self.sweeper = RetentionSweeper(
            self.store,
            max_age=self.config.retention_seconds,
            interval=self.config.sweep_interval_seconds,
        )

    # Lifecycle

    def start(self):
        """Start the worker and the retention sweeper."""
        self.worker.start()
        self.sweeper.start()
        log.info(
            "Job manager started (retention %.0fh, sweep every %.0fm, webhook %s)",
            self.config.retention_hours,
            self.config.sweep_interval_minutes,
            "on" if self.notifier.enabled else "off",
        )

    def close(self, timeout: Optional[float] = None):
        """Stop background threads, letting a running job and queued webhooks finish."""
        self.worker.stop(timeout)
        self.sweeper.stop(timeout)
        self.notifier.close(timeout)
        log.info("Job manager stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Submission

    def submit_job(
        self,
        note_id: str,
        note_content: str,
        user_id: str,
        duration: str = "short"
    ) -> PodcastJob:
        """
        Submit a new podcast generation job.

        Args:
            note_id: Identifier of the note being converted
            note_content: Text of the note
            user_id: Submitter identity
            duration: "short" or "long"

        Returns:
            The queued job

        Raises:
            ValueError: If parameters are invalid (no job is created)
        """
        submission = validate_submission(note_id, note_content, user_id, duration)
        job = self.store.create(submission)

        JobLogger(job.job_id, self.store).info(
            f"Job submitted for note {submission.note_id}",
            metadata={
                'note_id': submission.note_id,
                'user_id': submission.user_id,
                'duration': submission.duration.value,
                'content_length': len(submission.note_content),
            }
        )
        self.worker.enqueue(job.job_id)

        return job

    # Queries

    def get_job(self, job_id: JobID) -> Optional[PodcastJob]:
        """Get a job by ID, or None if unknown or already evicted."""
        return self.store.find(job_id)

    def get_user_jobs(self, user_id: str) -> List[PodcastJob]:
        """A submitter's jobs, newest first."""
        return self.store.list_by_submitter(user_id)

    def get_all_jobs(
        self,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None
    ) -> List[PodcastJob]:
        """All jobs newest first, optionally filtered by status."""
        jobs = self.store.list_by_status(status) if status is not None else self.store.list_all()
        jobs.reverse()
        return jobs[:limit] if limit is not None else jobs

    def get_statistics(self) -> Dict[str, int]:
        return self.store.get_statistics()

    def get_job_logs(
        self,
        job_id: JobID,
        level: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Log entries for a job, newest first."""
        return self.store.get_logs(job_id, level=level, limit=limit)

    def cleanup_old_jobs(self, max_age: Optional[float] = None) -> int:
        """
        Evict jobs older than max_age seconds (default: the retention window).

        Returns:
            Number of jobs removed
        """
        if max_age is None:
            return self.sweeper.sweep_now()
        return self.store.sweep(max_age)
