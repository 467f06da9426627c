"""
Unit tests for the job queue system.

Tests job records, the store state machine, queries and the manager API.
"""

import logging
import time
from unittest.mock import patch

import pytest
import requests

from kokoro_podcast.jobs import (
    CompletedResult,
    FailedResult,
    JobEvent,
    EventKind,
    JobManager,
    JobNotFoundError,
    JobStateError,
    JobStatus,
    JobLogger,
    PodcastFormat,
    Speaker,
    SynthesizedTurn,
)
from kokoro_podcast.jobs.models import build_transcript

from conftest import make_stages, make_submission, wait_for, NOTE_TEXT


def completed_result():
    return CompletedResult(
        podcast_id="pod-1",
        audio_url="https://cdn.example.com/podcasts/a.mp3",
        audio_duration=4.0,
    )


class TestJobStore:
    """JobStore CRUD and state machine."""

    def test_create_and_get(self, store):
        job = store.create(make_submission())

        assert job.status == JobStatus.QUEUED
        assert job.progress == 0
        assert job.current_step is None
        assert job.outcome is None
        assert job.job_id.startswith("job_")

        fetched = store.get(job.job_id)
        assert fetched.submission == make_submission()
        assert fetched.created_at == job.created_at

    def test_job_ids_are_unique(self, store):
        ids = {store.create(make_submission()).job_id for _ in range(200)}
        assert len(ids) == 200

    def test_snapshots_are_isolated(self, store):
        job = store.create(make_submission())
        job.progress = 50
        job.logs.append({'message': 'tampered'})

        fetched = store.get(job.job_id)
        assert fetched.progress == 0
        assert fetched.logs == []

    def test_unknown_id(self, store):
        with pytest.raises(JobNotFoundError) as exc_info:
            store.get("job_missing")
        assert exc_info.value.job_id == "job_missing"
        assert isinstance(exc_info.value, KeyError)

        assert store.find("job_missing") is None
        with pytest.raises(JobNotFoundError):
            store.apply_update("job_missing", progress=10)

    def test_update_rejects_unknown_fields(self, store):
        job = store.create(make_submission())
        with pytest.raises(ValueError):
            store.apply_update(job.job_id, submission=None)

    def test_progress_is_monotonic(self, store):
        job = store.create(make_submission())
        store.claim_next()

        store.update_progress(job.job_id, 30, "Synthesizing")
        with pytest.raises(JobStateError):
            store.update_progress(job.job_id, 25, "Back")

        assert store.get(job.job_id).progress == 30

    def test_progress_100_reserved_for_completion(self, store):
        job = store.create(make_submission())
        store.claim_next()

        with pytest.raises(JobStateError):
            store.update_progress(job.job_id, 100, "Almost")

    def test_progress_is_clamped(self, store):
        job = store.create(make_submission())
        store.claim_next()

        store.update_progress(job.job_id, -5, "Start")
        assert store.get(job.job_id).progress == 0

    def test_queued_cannot_complete_directly(self, store):
        job = store.create(make_submission())
        with pytest.raises(JobStateError):
            store.complete(job.job_id, completed_result())

    def test_terminal_requires_matching_outcome(self, store):
        job = store.create(make_submission())
        store.claim_next()

        with pytest.raises(JobStateError):
            store.apply_update(job.job_id, status=JobStatus.FAILED)
        with pytest.raises(JobStateError):
            store.apply_update(job.job_id, status=JobStatus.COMPLETED, outcome=FailedResult("x"))

    def test_terminal_records_are_write_once(self, store):
        job = store.create(make_submission())
        store.claim_next()
        store.fail(job.job_id, FailedResult(reason="boom"))

        with pytest.raises(JobStateError):
            store.complete(job.job_id, completed_result())
        with pytest.raises(JobStateError):
            store.update_progress(job.job_id, 50, "Late")

        failed = store.get(job.job_id)
        assert failed.status == JobStatus.FAILED
        assert failed.failure_reason == "boom"

    def test_complete_sets_progress_and_result(self, store):
        job = store.create(make_submission())
        store.claim_next()
        store.update_progress(job.job_id, 95, "Database updated")

        done = store.complete(job.job_id, completed_result())

        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        assert done.result.audio_url == "https://cdn.example.com/podcasts/a.mp3"
        assert done.failure_reason is None
        assert done.completed_at >= done.started_at

    def test_fail_keeps_progress(self, store):
        job = store.create(make_submission())
        store.claim_next()
        store.update_progress(job.job_id, 30, "Generating audio for each segment...")

        failed = store.fail(job.job_id, FailedResult(reason="voice unavailable"))

        assert failed.progress == 30
        assert failed.result is None


class TestQueueOperations:
    """claim_next() single-flight and ordering."""

    def test_claim_marks_processing(self, store):
        job = store.create(make_submission())
        claimed = store.claim_next()

        assert claimed.job_id == job.job_id
        assert claimed.status == JobStatus.PROCESSING
        assert claimed.started_at is not None
        assert claimed.progress == 0

    def test_claim_empty_store(self, store):
        assert store.claim_next() is None

    def test_single_flight(self, store):
        first = store.create(make_submission(note_id="a"))
        second = store.create(make_submission(note_id="b"))

        assert store.claim_next().job_id == first.job_id
        assert store.claim_next() is None
        assert store.get(second.job_id).status == JobStatus.QUEUED

        store.fail(first.job_id, FailedResult(reason="boom"))
        assert store.claim_next().job_id == second.job_id

    def test_fifo_order(self, store):
        jobs = [store.create(make_submission(note_id=f"note-{i}")) for i in range(5)]

        claimed = []
        for _ in jobs:
            job = store.claim_next()
            claimed.append(job.job_id)
            store.fail(job.job_id, FailedResult(reason="skip"))

        assert claimed == [job.job_id for job in jobs]

    def test_apply_update_keeps_single_flight(self, store):
        a = store.create(make_submission(note_id="a"))
        b = store.create(make_submission(note_id="b"))

        moved = store.apply_update(a.job_id, status=JobStatus.PROCESSING)
        assert moved.started_at is not None

        with pytest.raises(JobStateError):
            store.apply_update(b.job_id, status=JobStatus.PROCESSING)

        assert [j.job_id for j in store.list_by_status(JobStatus.PROCESSING)] == [a.job_id]
        assert store.get(b.job_id).status == JobStatus.QUEUED
        assert store.claim_next() is None


class TestQueries:

    def test_list_by_submitter_newest_first(self, store):
        first = store.create(make_submission(user_id="alice"))
        store.create(make_submission(user_id="bob"))
        second = store.create(make_submission(user_id="alice"))

        jobs = store.list_by_submitter("alice")
        assert [j.job_id for j in jobs] == [second.job_id, first.job_id]
        assert store.list_by_submitter("nobody") == []

    def test_list_by_status(self, store):
        a = store.create(make_submission())
        store.create(make_submission())
        store.claim_next()

        processing = store.list_by_status(JobStatus.PROCESSING)
        assert [j.job_id for j in processing] == [a.job_id]
        assert len(store.list_by_status(JobStatus.QUEUED)) == 1

    def test_statistics(self, store):
        a = store.create(make_submission())
        store.create(make_submission())
        store.create(make_submission())
        store.claim_next()
        store.fail(a.job_id, FailedResult(reason="boom"))
        store.claim_next()

        assert store.get_statistics() == {
            'total': 3,
            'queued': 1,
            'processing': 1,
            'completed': 0,
            'failed': 1,
        }

    def test_sweep_removes_old_jobs_any_status(self, store):
        old_queued = store.create(make_submission())
        old_processing = store.create(make_submission())
        fresh = store.create(make_submission())

        store.claim_next()
        for job in (old_queued, old_processing):
            store._jobs[job.job_id].created_at -= 2 * 3600

        removed = store.sweep(max_age=3600)

        assert removed == 2
        assert store.find(old_queued.job_id) is None
        assert store.find(old_processing.job_id) is None
        assert store.find(fresh.job_id) is not None

    def test_sweep_uses_reference_time(self, store):
        store.create(make_submission())
        assert store.sweep(max_age=60) == 0
        assert store.sweep(max_age=60, now=time.time() + 61) == 1
        assert len(store) == 0


class TestJobLogging:

    def test_logs_are_kept_on_the_record(self, store):
        job = store.create(make_submission())
        logger = JobLogger(job.job_id, store)

        logger.info("Starting")
        logger.warning("Slow response", metadata={'seconds': 12})
        logger.error("Broken")

        recent = logger.get_recent_logs()
        assert [entry['message'] for entry in recent] == ["Broken", "Slow response", "Starting"]
        assert recent[1]['metadata'] == {'seconds': 12}

        errors = logger.get_error_logs()
        assert len(errors) == 1
        assert errors[0]['level'] == "ERROR"

    def test_logs_are_capped(self):
        from kokoro_podcast.jobs import JobStore

        store = JobStore(max_log_entries=3)
        job = store.create(make_submission())
        logger = JobLogger(job.job_id, store)
        for i in range(5):
            logger.info(f"entry {i}")

        assert [e['message'] for e in store.get_logs(job.job_id)] == ["entry 4", "entry 3", "entry 2"]

    def test_logging_after_eviction_is_ignored(self, store):
        job = store.create(make_submission())
        store.delete(job.job_id)

        JobLogger(job.job_id, store).info("Too late")
        assert store.find(job.job_id) is None


class TestModels:

    def test_transcript_timeline(self):
        turns = [
            SynthesizedTurn(Speaker.HOST, "Hi", b"", 1.5),
            SynthesizedTurn(Speaker.GUEST, "Hello", b"", 2.0),
            SynthesizedTurn(Speaker.HOST, "Bye", b"", 0.5),
        ]
        transcript = build_transcript(turns)

        assert [(s.start_time, s.end_time) for s in transcript] == [(0.0, 1.5), (1.5, 3.5), (3.5, 4.0)]
        assert transcript[1].to_dict() == {
            'speaker': 'guest',
            'text': 'Hello',
            'startTime': 1.5,
            'endTime': 3.5,
        }

    def test_status_projection_queued(self, store):
        job = store.create(make_submission())
        data = job.to_dict()

        assert data['jobId'] == job.job_id
        assert data['status'] == "queued"
        assert data['progress'] == 0
        assert data['noteId'] == "note-1"
        assert data['userId'] == "user-1"
        assert data['duration'] == "short"
        assert data['startedAt'] is None
        assert 'audioUrl' not in data
        assert 'error' not in data

    def test_status_projection_terminal(self, store):
        job = store.create(make_submission())
        store.claim_next()
        done = store.complete(job.job_id, completed_result())

        data = done.to_dict()
        assert data['status'] == "completed"
        assert data['progress'] == 100
        assert data['podcastId'] == "pod-1"
        assert data['audioDuration'] == 4.0
        assert data['transcript'] == []
        assert 'error' not in data

    def test_event_requires_terminal_job(self, store):
        job = store.create(make_submission())
        with pytest.raises(ValueError):
            JobEvent.from_job(job)

    def test_failed_event_payload(self, store):
        job = store.create(make_submission(duration=PodcastFormat.LONG))
        store.claim_next()
        failed = store.fail(job.job_id, FailedResult(reason="voice unavailable"))

        event = JobEvent.from_job(failed)
        payload = event.to_payload()

        assert event.kind == EventKind.FAILED
        assert payload['event'] == "podcast.failed"
        assert payload['jobId'] == job.job_id
        assert payload['duration'] == "long"
        assert payload['error'] == "voice unavailable"
        assert 'audioUrl' not in payload
        assert payload['timestamp'].endswith("+00:00")


class TestJobManager:

    def test_submit_returns_queued_job(self, config):
        manager = JobManager(config, stages=make_stages())

        job = manager.submit_job("note-1", NOTE_TEXT, "user-1", "long")

        assert job.status == JobStatus.QUEUED
        assert job.submission.duration == PodcastFormat.LONG
        assert manager.get_job(job.job_id).job_id == job.job_id
        assert manager.get_job_logs(job.job_id)[0]['message'] == "Job submitted for note note-1"

    @pytest.mark.parametrize("note_id,content,user_id,duration", [
        ("", NOTE_TEXT, "user-1", "short"),
        ("note-1", NOTE_TEXT, "  ", "short"),
        ("note-1", "too short", "user-1", "short"),
        ("note-1", NOTE_TEXT, "user-1", "medium"),
        ("note-1", None, "user-1", "short"),
    ])
    def test_invalid_submission_creates_nothing(self, config, note_id, content, user_id, duration):
        manager = JobManager(config, stages=make_stages())

        with pytest.raises(ValueError):
            manager.submit_job(note_id, content, user_id, duration)

        assert manager.get_statistics()['total'] == 0

    def test_unknown_job_is_none(self, config):
        manager = JobManager(config, stages=make_stages())
        assert manager.get_job("job_0_missing") is None

    def test_get_all_jobs_newest_first(self, config):
        manager = JobManager(config, stages=make_stages())
        first = manager.submit_job("note-1", NOTE_TEXT, "user-1")
        second = manager.submit_job("note-2", NOTE_TEXT, "user-2")

        assert [j.job_id for j in manager.get_all_jobs()] == [second.job_id, first.job_id]
        assert [j.job_id for j in manager.get_all_jobs(limit=1)] == [second.job_id]
        assert len(manager.get_all_jobs(status=JobStatus.COMPLETED)) == 0
        assert [j.job_id for j in manager.get_user_jobs("user-1")] == [first.job_id]

    def test_cleanup_old_jobs(self, config):
        manager = JobManager(config, stages=make_stages())
        job = manager.submit_job("note-1", NOTE_TEXT, "user-1")
        manager.store._jobs[job.job_id].created_at -= 25 * 3600

        assert manager.cleanup_old_jobs() == 1
        assert manager.get_job(job.job_id) is None

    def test_end_to_end(self, config):
        with JobManager(config, stages=make_stages()) as manager:
            job = manager.submit_job("note-1", NOTE_TEXT, "user-1", "short")

            assert wait_for(lambda: manager.get_job(job.job_id).status.is_terminal)

            done = manager.get_job(job.job_id)
            assert done.status == JobStatus.COMPLETED
            assert done.progress == 100
            assert done.current_step == "Completed"
            assert done.result.audio_url == "https://cdn.example.com/podcasts/podcast-note-1.mp3"
            assert len(done.result.transcript) == 3

        assert not manager.worker.is_running

    def test_webhook_outage_keeps_job_completed(self, config, caplog):
        config.webhook_url = "https://hooks.example.com/podcast"
        manager = JobManager(config, stages=make_stages())

        with patch("kokoro_podcast.jobs.notifier.requests.post",
                   side_effect=requests.ConnectionError("connection refused")) as post:
            job = manager.submit_job("note-1", NOTE_TEXT, "user-1", "short")
            with caplog.at_level(logging.ERROR, logger="kokoro_podcast.jobs.notifier"):
                assert manager.worker.run_once() is True
                manager.notifier.flush()

        assert post.call_count == 1
        assert "connection refused" in caplog.text

        done = manager.get_job(job.job_id)
        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        manager.close(timeout=5)
