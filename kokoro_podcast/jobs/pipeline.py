"""
Pipeline stage contracts consumed by the worker.

Each stage is a request/response collaborator that enforces its own timeout
and raises a PipelineError subclass on failure.
"""

from dataclasses import dataclass
from typing import Optional, List, Any, Protocol

from .models import DialogueTurn, SynthesizedTurn, PodcastFormat


class PipelineError(Exception):
    """Base class for stage failures. Fatal to the job, never to the worker."""


class ScriptGenerationError(PipelineError):
    pass


class SynthesisError(PipelineError):
    pass


class AssemblyError(PipelineError):
    pass


class PublishError(PipelineError):
    pass


class PersistenceError(PipelineError):
    pass


@dataclass
class AssembledAudio:
    """Single combined audio blob."""
    audio: bytes
    duration: float
    format: str = "mp3"


class ScriptStage(Protocol):
    def generate_script(self, content: str, duration: PodcastFormat) -> List[DialogueTurn]:
        ...


class SynthesisStage(Protocol):
    def synthesize_turn(self, turn: DialogueTurn) -> SynthesizedTurn:
        ...


class AssemblyStage(Protocol):
    def combine(self, turns: List[SynthesizedTurn]) -> AssembledAudio:
        ...


class PublishStage(Protocol):
    def publish(self, audio: bytes, name_hint: str, extension: str = "mp3") -> str:
        ...


class PersistStage(Protocol):
    def create_podcast(self, note_id: str, user_id: str, note_content: str, duration: str) -> str:
        ...

    def update_podcast(self, podcast_id: str, **fields: Any) -> Optional[dict]:
        ...


@dataclass
class PipelineStages:
    """The five collaborators, in the order the worker calls them."""
    script: ScriptStage
    synthesis: SynthesisStage
    assembly: AssemblyStage
    publisher: PublishStage
    database: PersistStage


@dataclass(frozen=True)
class Checkpoint:
    progress: int
    label: str


# Progress written at stage boundaries. Monotonic; 100 is set on completion.
RECORD_STARTED = Checkpoint(5, "Creating database record...")
SCRIPT_STARTED = Checkpoint(10, "Generating podcast script...")
SCRIPT_DONE = Checkpoint(25, "Generated {count} dialogue segments")
SYNTHESIS_STARTED = Checkpoint(30, "Generating audio for each segment...")
SYNTHESIS_DONE = Checkpoint(60, "Generated {count} audio segments")
ASSEMBLY_STARTED = Checkpoint(65, "Combining audio segments...")
ASSEMBLY_DONE = Checkpoint(75, "Audio combined successfully")
PUBLISH_STARTED = Checkpoint(80, "Uploading audio...")
PUBLISH_DONE = Checkpoint(90, "Upload complete")
PERSIST_STARTED = Checkpoint(92, "Updating database...")
PERSIST_DONE = Checkpoint(95, "Database updated")
COMPLETED_LABEL = "Completed"
