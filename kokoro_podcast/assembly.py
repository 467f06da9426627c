"""Audio assembly.

Concatenates synthesized dialogue turns into a single episode file.
"""

import io
import logging
from typing import List

from pydub import AudioSegment

from kokoro_podcast.jobs.models import SynthesizedTurn
from kokoro_podcast.jobs.pipeline import AssembledAudio, AssemblyError

log = logging.getLogger(__name__)

# extension -> pydub export arguments
EXPORT_FORMATS = {
    'wav': {'format': 'wav'},
    'mp3': {'format': 'mp3', 'bitrate': '128k'},
    'm4a': {'format': 'mp4', 'codec': 'aac', 'bitrate': '128k'},
}


def combine_audio(
    turns: List[SynthesizedTurn],
    output_format: str = "mp3",
    input_format: str = "wav"
) -> AssembledAudio:
    """Combine turn audio into one blob.

    Args:
        turns: Synthesized turns in playback order
        output_format: wav, mp3 or m4a (mp3/m4a need ffmpeg)
        input_format: Container of each turn's audio bytes

    Returns:
        AssembledAudio whose duration is the sum of the turn durations

    Raises:
        AssemblyError: If there is nothing to combine or decoding/encoding fails
    """
    if not turns:
        raise AssemblyError("No audio segments to combine")
    if output_format not in EXPORT_FORMATS:
        raise AssemblyError(f"Unsupported output format: {output_format}")

    log.info("Combining %d audio segments", len(turns))

    try:
        combined = AudioSegment.empty()
        for turn in turns:
            combined += AudioSegment.from_file(io.BytesIO(turn.audio), format=input_format)

        buffer = io.BytesIO()
        combined.export(buffer, **EXPORT_FORMATS[output_format])
    except Exception as e:
        raise AssemblyError(f"Failed to combine audio: {e}") from e

    total_duration = sum(turn.duration for turn in turns)
    audio = buffer.getvalue()
    log.info("Final audio size: %.2f MB, duration %.2fs", len(audio) / 1024 / 1024, total_duration)

    return AssembledAudio(audio=audio, duration=total_duration, format=output_format)


class AudioAssembler:
    """Assembly stage with a fixed output format."""

    def __init__(self, output_format: str = "mp3", input_format: str = "wav"):
        if output_format not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported output format: {output_format}")
        self.output_format = output_format
        self.input_format = input_format

    def combine(self, turns: List[SynthesizedTurn]) -> AssembledAudio:
        return combine_audio(turns, output_format=self.output_format, input_format=self.input_format)
