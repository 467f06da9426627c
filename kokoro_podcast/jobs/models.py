"""
Data models for the podcast job queue.

A PodcastJob is created by the submission entry point, mutated only by the
worker until it reaches a terminal state, and evicted by the retention sweeper.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Union


class JobStatus(str, Enum):
    """Job execution status."""
    QUEUED = "queued"            # Waiting for the worker
    PROCESSING = "processing"    # Claimed by the worker, stages running
    COMPLETED = "completed"      # Successfully finished
    FAILED = "failed"            # A stage failed, no retry

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Allowed forward moves of the state machine
TRANSITIONS = {
    JobStatus.QUEUED: (JobStatus.PROCESSING,),
    JobStatus.PROCESSING: (JobStatus.COMPLETED, JobStatus.FAILED),
    JobStatus.COMPLETED: (),
    JobStatus.FAILED: (),
}


class PodcastFormat(str, Enum):
    """Episode length selector."""
    SHORT = "short"
    LONG = "long"


class Speaker(str, Enum):
    HOST = "host"
    GUEST = "guest"


@dataclass(frozen=True)
class SubmissionInput:
    """Caller-provided payload. Immutable after the job is created."""
    note_id: str
    note_content: str
    user_id: str
    duration: PodcastFormat = PodcastFormat.SHORT


@dataclass
class DialogueTurn:
    """One line of the generated script."""
    speaker: Speaker
    text: str


@dataclass
class SynthesizedTurn:
    """A dialogue turn with its rendered audio."""
    speaker: Speaker
    text: str
    audio: bytes
    duration: float


@dataclass
class TranscriptSegment:
    """A transcript line positioned on the final audio timeline."""
    speaker: Speaker
    text: str
    start_time: float
    end_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'speaker': self.speaker.value,
            'text': self.text,
            'startTime': self.start_time,
            'endTime': self.end_time,
        }


def build_transcript(turns: List[SynthesizedTurn]) -> List[TranscriptSegment]:
    """Lay synthesized turns end to end and return their timeline."""
    transcript = []
    cursor = 0.0
    for turn in turns:
        transcript.append(TranscriptSegment(
            speaker=turn.speaker,
            text=turn.text,
            start_time=cursor,
            end_time=cursor + turn.duration,
        ))
        cursor += turn.duration
    return transcript


@dataclass(frozen=True)
class CompletedResult:
    """Outcome of a job that went through every stage."""
    podcast_id: str
    audio_url: str
    audio_duration: float
    transcript: List[TranscriptSegment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'podcastId': self.podcast_id,
            'audioUrl': self.audio_url,
            'audioDuration': self.audio_duration,
            'transcript': [segment.to_dict() for segment in self.transcript],
        }


@dataclass(frozen=True)
class FailedResult:
    """
    Outcome of a job whose pipeline raised.

    Includes the diagnostic string plus where in the pipeline it happened.
    """
    reason: str
    error_type: str = "Exception"
    failed_step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.reason}


JobOutcome = Union[CompletedResult, FailedResult]


def new_job_id() -> str:
    """Opaque job handle, e.g. ``job_1700000000000_3f9c2a1b7d``."""
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}"


def format_timestamp(timestamp: Optional[float]) -> Optional[str]:
    """Format a Unix timestamp as an ISO-8601 UTC string."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class PodcastJob:
    """
    One podcast generation request and its evolving state.

    Owned by JobStore. ``outcome`` is None until the job is terminal, then
    holds exactly one of CompletedResult / FailedResult.
    """
    # Identity
    job_id: str = field(default_factory=new_job_id)
    created_at: float = field(default_factory=time.time)

    # Input
    submission: Optional[SubmissionInput] = None

    # Status
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    current_step: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    # Terminal outcome
    outcome: Optional[JobOutcome] = None

    # Structured per-job log entries (see JobLogger)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def user_id(self) -> str:
        return self.submission.user_id if self.submission else ""

    @property
    def note_id(self) -> str:
        return self.submission.note_id if self.submission else ""

    @property
    def result(self) -> Optional[CompletedResult]:
        """Completion result, if the job completed."""
        return self.outcome if isinstance(self.outcome, CompletedResult) else None

    @property
    def failure_reason(self) -> Optional[str]:
        """Diagnostic string, if the job failed."""
        return self.outcome.reason if isinstance(self.outcome, FailedResult) else None

    def to_dict(self) -> Dict[str, Any]:
        """
        Status projection returned to pollers.

        Result fields are present only for completed jobs, ``error`` only for
        failed ones.
        """
        data = {
            'jobId': self.job_id,
            'status': self.status.value,
            'progress': self.progress,
            'currentStep': self.current_step,
            'noteId': self.note_id,
            'userId': self.user_id,
            'duration': self.submission.duration.value if self.submission else None,
            'createdAt': format_timestamp(self.created_at),
            'startedAt': format_timestamp(self.started_at),
            'completedAt': format_timestamp(self.completed_at),
        }
        if self.outcome is not None:
            data.update(self.outcome.to_dict())
        return data

    def get_elapsed_time(self) -> Optional[float]:
        """Get elapsed processing time in seconds."""
        if self.started_at is None:
            return None

        if self.completed_at is not None:
            return self.completed_at - self.started_at
        else:
            return time.time() - self.started_at

    def format_status_message(self) -> str:
        """Format a user-friendly status message."""
        if self.status == JobStatus.QUEUED:
            return "Waiting in queue..."
        elif self.status == JobStatus.PROCESSING:
            if self.current_step:
                return f"{self.current_step} ({self.progress}%)"
            return f"Processing... ({self.progress}%)"
        elif self.status == JobStatus.COMPLETED:
            return "Completed successfully"
        elif self.status == JobStatus.FAILED:
            if self.failure_reason:
                return f"Failed: {self.failure_reason}"
            return "Failed"
        else:
            return str(self.status.value)


class EventKind(str, Enum):
    COMPLETED = "podcast.completed"
    FAILED = "podcast.failed"


@dataclass(frozen=True)
class JobEvent:
    """
    Terminal-transition event published by the worker.

    Carries a snapshot of the job so listeners never touch the store.
    """
    kind: EventKind
    job_id: str
    submission: SubmissionInput
    outcome: JobOutcome
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_job(cls, job: PodcastJob) -> 'JobEvent':
        if job.outcome is None or job.submission is None:
            raise ValueError(f"Job {job.job_id} has no terminal outcome")
        kind = EventKind.COMPLETED if isinstance(job.outcome, CompletedResult) else EventKind.FAILED
        return cls(kind=kind, job_id=job.job_id, submission=job.submission, outcome=job.outcome)

    def to_payload(self) -> Dict[str, Any]:
        """Webhook body for this event."""
        payload = {
            'event': self.kind.value,
            'jobId': self.job_id,
            'noteId': self.submission.note_id,
            'userId': self.submission.user_id,
            'duration': self.submission.duration.value,
        }
        payload.update(self.outcome.to_dict())
        payload['timestamp'] = format_timestamp(self.timestamp)
        return payload


# Type aliases for clarity
JobID = str
