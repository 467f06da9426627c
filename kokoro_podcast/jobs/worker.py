"""
Background worker that drives podcast jobs through the pipeline.

A single thread claims one queued job at a time and runs every stage
synchronously, so at most one job is ever processing.
"""

import logging
import os
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional, Callable, List

from .models import (
    PodcastJob,
    JobStatus,
    JobEvent,
    JobID,
    SynthesizedTurn,
    CompletedResult,
    FailedResult,
    build_transcript,
)
from .storage import JobStore, JobNotFoundError, JobStateError
from .logger import JobLogger
from . import pipeline
from .pipeline import PipelineStages, Checkpoint, ScriptGenerationError, PersistenceError

log = logging.getLogger(__name__)

JobListener = Callable[[JobEvent], None]


@dataclass
class _RunState:
    """What the failure path needs to know about a half-finished run."""
    step: str = "starting"
    podcast_id: Optional[str] = None


class PodcastWorker:
    """
    Single-flight scheduler for podcast generation.

    Features:
    - Blocks on a wakeup queue instead of busy-polling
    - Claims jobs through JobStore.claim_next() (oldest first, one at a time)
    - Writes fixed progress checkpoints at stage boundaries
    - Fails the job on any stage error and keeps serving the queue
    - Publishes one JobEvent per terminal transition to its listeners
    """

    def __init__(
        self,
        store: JobStore,
        stages: PipelineStages,
        poll_interval: float = 1.0
    ):
        """
        Initialize worker.

        Args:
            store: JobStore holding the jobs
            stages: Pipeline collaborators
            poll_interval: Seconds to wait for a wakeup before rescanning the store
        """
        self.store = store
        self.stages = stages
        self.poll_interval = poll_interval
        self.worker_id = f"worker-{os.getpid()}"

        self.current_job_id: Optional[JobID] = None

        self._wakeups: "queue.Queue[JobID]" = queue.Queue()
        self._listeners: List[JobListener] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Lifecycle

    def add_listener(self, listener: JobListener):
        """Register a callable invoked once per terminal transition."""
        self._listeners.append(listener)

    def enqueue(self, job_id: JobID):
        """Wake the worker for a newly submitted job."""
        self._wakeups.put(job_id)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the worker thread. No-op if already running."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="kokoro-podcast-worker",
            daemon=True
        )
        self._thread.start()
        log.info("Worker %s started", self.worker_id)

    def stop(self, timeout: Optional[float] = None):
        """
        Stop the worker thread.

        A job already processing runs to completion first; there is no
        cancellation.
        """
        self._stop_event.set()
        self._wakeups.put("")
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                log.warning("Worker %s still busy with job %s", self.worker_id, self.current_job_id)
            else:
                self._thread = None
        log.info("Worker %s stopped", self.worker_id)

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self._wakeups.get(timeout=self.poll_interval)
            except queue.Empty:
                # Periodic rescan picks up jobs created without a wakeup
                pass

            while not self._stop_event.is_set() and self.run_once():
                pass

    def run_once(self) -> bool:
        """
        Claim and process one queued job synchronously.

        Returns:
            True if a job was processed, False if nothing was claimable
        """
        job = self.store.claim_next()
        if job is None:
            return False

        self.current_job_id = job.job_id
        log.info("Processing job %s", job.job_id)

        error = None
        try:
            self.execute_job(job)
        except Exception as e:
            error = e
            log.exception("Unexpected error executing job %s", job.job_id)
        finally:
            self._release_if_stuck(job.job_id, error)
            self.current_job_id = None

        return True

    def _release_if_stuck(self, job_id: JobID, error: Optional[Exception]):
        """Fail a claimed job that execute_job() left in processing."""
        job = self.store.find(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return

        if error is not None:
            failure = FailedResult(
                reason=str(error) or type(error).__name__,
                error_type=type(error).__name__,
            )
        else:
            failure = FailedResult(reason="Job execution was interrupted", error_type="Interrupted")

        try:
            failed = self.store.fail(job_id, failure)
        except (JobNotFoundError, JobStateError):
            return

        log.error("Job %s was left processing and has been failed: %s", job_id, failure.reason)
        self._publish(JobEvent.from_job(failed))

    # Job execution

    def execute_job(self, job: PodcastJob):
        """
        Run every pipeline stage for a claimed job and record the outcome.

        Args:
            job: Snapshot returned by claim_next()
        """
        logger = JobLogger(job.job_id, self.store)
        logger.info("Job execution started", metadata={"worker_id": self.worker_id})

        start_time = time.time()
        state = _RunState()

        try:
            result = self._run_pipeline(job, logger, state)
        except Exception as e:
            self._handle_failure(job, e, logger, state)
            return

        try:
            finished = self.store.complete(job.job_id, result, pipeline.COMPLETED_LABEL)
        except JobNotFoundError:
            logger.warning("Job was evicted before it could complete")
            return

        logger.info(
            f"Job completed successfully in {time.time() - start_time:.1f}s",
            metadata={
                'podcast_id': result.podcast_id,
                'audio_url': result.audio_url,
                'audio_duration': result.audio_duration,
            }
        )
        self._publish(JobEvent.from_job(finished))

    def _run_pipeline(self, job: PodcastJob, logger: JobLogger, state: _RunState) -> CompletedResult:
        submission = job.submission
        stages = self.stages

        state.step = "persistence"
        self._checkpoint(job.job_id, pipeline.RECORD_STARTED, logger)
        state.podcast_id = stages.database.create_podcast(
            note_id=submission.note_id,
            user_id=submission.user_id,
            note_content=submission.note_content,
            duration=submission.duration.value,
        )

        # Step 1: Generate script
        state.step = "script"
        self._checkpoint(job.job_id, pipeline.SCRIPT_STARTED, logger)
        stage_start = time.time()
        dialogue = stages.script.generate_script(submission.note_content, submission.duration)
        if not dialogue:
            raise ScriptGenerationError("Script generation returned no dialogue")
        logger.log_stage_complete("script", time.time() - stage_start, turns=len(dialogue))
        self._checkpoint(job.job_id, pipeline.SCRIPT_DONE, logger, count=len(dialogue))

        # Step 2: Synthesize every turn
        state.step = "synthesis"
        self._checkpoint(job.job_id, pipeline.SYNTHESIS_STARTED, logger)
        stage_start = time.time()
        turns: List[SynthesizedTurn] = []
        for index, turn in enumerate(dialogue, 1):
            logger.debug(f"Synthesizing segment {index}/{len(dialogue)} ({turn.speaker.value})")
            turns.append(stages.synthesis.synthesize_turn(turn))
        logger.log_stage_complete("synthesis", time.time() - stage_start, segments=len(turns))
        self._checkpoint(job.job_id, pipeline.SYNTHESIS_DONE, logger, count=len(turns))

        # Step 3: Combine audio
        state.step = "assembly"
        self._checkpoint(job.job_id, pipeline.ASSEMBLY_STARTED, logger)
        assembled = stages.assembly.combine(turns)
        self._checkpoint(job.job_id, pipeline.ASSEMBLY_DONE, logger)

        # Step 4: Publish
        state.step = "publication"
        self._checkpoint(job.job_id, pipeline.PUBLISH_STARTED, logger)
        audio_url = stages.publisher.publish(assembled.audio, submission.note_id, assembled.format)
        self._checkpoint(job.job_id, pipeline.PUBLISH_DONE, logger)

        # Step 5: Persist the result
        state.step = "persistence"
        self._checkpoint(job.job_id, pipeline.PERSIST_STARTED, logger)
        transcript = build_transcript(turns)
        record = stages.database.update_podcast(
            state.podcast_id,
            audio_url=audio_url,
            audio_duration=assembled.duration,
            transcript=[segment.to_dict() for segment in transcript],
            status="completed",
        )
        if record is None:
            raise PersistenceError(f"Podcast record {state.podcast_id} not found")
        self._checkpoint(job.job_id, pipeline.PERSIST_DONE, logger)

        return CompletedResult(
            podcast_id=state.podcast_id,
            audio_url=audio_url,
            audio_duration=assembled.duration,
            transcript=transcript,
        )

    def _handle_failure(self, job: PodcastJob, error: Exception, logger: JobLogger, state: _RunState):
        reason = str(error) or type(error).__name__
        logger.log_error_with_context(error, f"{state.step} stage")

        # The podcast record stays, marked as failed
        if state.podcast_id is not None:
            try:
                self.stages.database.update_podcast(state.podcast_id, status="failed", error=reason)
            except Exception as db_error:
                logger.error(f"Failed to update podcast status: {db_error}")

        failure = FailedResult(reason=reason, error_type=type(error).__name__, failed_step=state.step)
        try:
            failed = self.store.fail(job.job_id, failure)
        except JobNotFoundError:
            log.warning("Job %s was evicted before it could be marked failed", job.job_id)
            return

        log.error("Job %s failed at %s: %s", job.job_id, state.step, reason)
        self._publish(JobEvent.from_job(failed))

    def _checkpoint(self, job_id: JobID, checkpoint: Checkpoint, logger: JobLogger, **label_args):
        label = checkpoint.label.format(**label_args) if label_args else checkpoint.label
        self.store.update_progress(job_id, checkpoint.progress, label)
        logger.log_progress(checkpoint.progress, label)

    def _publish(self, event: JobEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Job event listener %r failed for %s", listener, event.job_id)
