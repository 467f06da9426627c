"""
Shared pytest fixtures and fake pipeline stages for Kokoro Podcast tests
"""
import sys
import threading
import time
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from kokoro_podcast.config import ServiceConfig
from kokoro_podcast.jobs import (
    AssembledAudio,
    DialogueTurn,
    JobStore,
    PersistenceError,
    PipelineStages,
    PodcastFormat,
    PodcastWorker,
    Speaker,
    SubmissionInput,
    SynthesisError,
    SynthesizedTurn,
)

NOTE_TEXT = "Photosynthesis turns light, water and carbon dioxide into sugar and oxygen."


class FakeScript:
    """Returns a fixed dialogue, optionally blocking until released."""

    def __init__(self, turns=None, error=None, gate=None):
        self.turns = turns if turns is not None else [
            DialogueTurn(Speaker.HOST, "Welcome to the show. Today we talk about plants."),
            DialogueTurn(Speaker.GUEST, "Plants make their own food from sunlight."),
            DialogueTurn(Speaker.HOST, "That's amazing. Thanks for joining us."),
        ]
        self.error = error
        self.gate = gate
        self.calls = []
        self.started = threading.Event()

    def generate_script(self, content, duration):
        self.calls.append((content, duration))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.turns)


class FakeSynthesis:
    """Two seconds of audio per turn; fails on turns containing fail_on."""

    def __init__(self, seconds_per_turn=2.0, fail_on=None):
        self.seconds_per_turn = seconds_per_turn
        self.fail_on = fail_on
        self.calls = []

    def synthesize_turn(self, turn):
        self.calls.append(turn)
        if self.fail_on and self.fail_on in turn.text:
            raise SynthesisError("voice unavailable")
        return SynthesizedTurn(
            speaker=turn.speaker,
            text=turn.text,
            audio=turn.text.encode("utf-8"),
            duration=self.seconds_per_turn,
        )


class FakeAssembler:
    def combine(self, turns):
        return AssembledAudio(
            audio=b"".join(t.audio for t in turns),
            duration=sum(t.duration for t in turns),
            format="mp3",
        )


class FakePublisher:
    def __init__(self):
        self.published = []

    def publish(self, audio, name_hint, extension="mp3"):
        self.published.append((audio, name_hint, extension))
        return f"https://cdn.example.com/podcasts/podcast-{name_hint}.{extension}"


class RecordingDatabase:
    """In-memory stand-in for PodcastDatabase."""

    def __init__(self, fail_create=False):
        self.fail_create = fail_create
        self.records = {}
        self.updates = []

    def create_podcast(self, note_id, user_id, note_content, duration):
        if self.fail_create:
            raise PersistenceError("database unavailable")
        podcast_id = f"pod-{len(self.records) + 1}"
        self.records[podcast_id] = {
            'note_id': note_id,
            'user_id': user_id,
            'duration': duration,
            'status': 'generating',
        }
        return podcast_id

    def update_podcast(self, podcast_id, **fields):
        self.updates.append((podcast_id, fields))
        self.records[podcast_id].update(fields)
        return self.records[podcast_id]


def make_stages(script=None, synthesis=None, database=None, publisher=None):
    return PipelineStages(
        script=script or FakeScript(),
        synthesis=synthesis or FakeSynthesis(),
        assembly=FakeAssembler(),
        publisher=publisher or FakePublisher(),
        database=database or RecordingDatabase(),
    )


def make_submission(note_id="note-1", user_id="user-1", duration=PodcastFormat.SHORT):
    return SubmissionInput(
        note_id=note_id,
        note_content=NOTE_TEXT,
        user_id=user_id,
        duration=duration,
    )


def wait_for(predicate, timeout=5.0):
    """Poll predicate until it is true or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def stages():
    return make_stages()


@pytest.fixture
def worker(store, stages):
    worker = PodcastWorker(store, stages, poll_interval=0.05)
    yield worker
    worker.stop(timeout=5)


@pytest.fixture
def events(worker):
    """Events published by the worker fixture."""
    received = []
    worker.add_listener(received.append)
    return received


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(
        output_dir=str(tmp_path / "podcasts"),
        db_path=str(tmp_path / "podcasts.db"),
        poll_interval=0.05,
    )
