"""
Background job queue for podcast generation.

Submissions return a job id immediately; a single worker thread turns each
note into a two-voice episode while callers poll the job for progress. Jobs
live in memory and are evicted after the retention window.

Key Components:
- JobManager: High-level API for submission, queries and lifecycle
- PodcastWorker: Single-flight worker that runs the pipeline stages
- JobStore: Thread-safe in-memory job registry
- WebhookNotifier: Posts podcast.completed / podcast.failed events
- RetentionSweeper: Evicts old jobs on a timer
- JobLogger: Per-job structured log entries

Example Usage:
    from kokoro_podcast.config import ServiceConfig
    from kokoro_podcast.jobs import JobManager

    with JobManager(ServiceConfig.from_env()) as manager:
        job = manager.submit_job(
            note_id="note-42",
            note_content=notes,
            user_id="user-1",
            duration="short"
        )

        # Check status
        job = manager.get_job(job.job_id)
        print(f"Progress: {job.progress}%")
"""

__version__ = "1.0.0"

# Import key components for easy access
from .models import (
    PodcastJob,
    JobStatus,
    PodcastFormat,
    Speaker,
    SubmissionInput,
    DialogueTurn,
    SynthesizedTurn,
    TranscriptSegment,
    CompletedResult,
    FailedResult,
    JobEvent,
    EventKind,
    JobID
)

from .storage import JobStore, JobNotFoundError, JobStateError
from .logger import JobLogger
from .pipeline import (
    PipelineStages,
    AssembledAudio,
    PipelineError,
    ScriptGenerationError,
    SynthesisError,
    AssemblyError,
    PublishError,
    PersistenceError
)
from .worker import PodcastWorker
from .notifier import WebhookNotifier
from .retention import RetentionSweeper
from .manager import JobManager, default_stages, validate_submission

__all__ = [
    # Data models
    'PodcastJob',
    'JobStatus',
    'PodcastFormat',
    'Speaker',
    'SubmissionInput',
    'DialogueTurn',
    'SynthesizedTurn',
    'TranscriptSegment',
    'CompletedResult',
    'FailedResult',
    'JobEvent',
    'EventKind',
    'JobID',

    # Core components
    'JobStore',
    'JobNotFoundError',
    'JobStateError',
    'JobLogger',
    'JobManager',
    'default_stages',
    'validate_submission',

    # Pipeline
    'PipelineStages',
    'AssembledAudio',
    'PipelineError',
    'ScriptGenerationError',
    'SynthesisError',
    'AssemblyError',
    'PublishError',
    'PersistenceError',

    # Background threads
    'PodcastWorker',
    'WebhookNotifier',
    'RetentionSweeper',
]
