"""Speech synthesis for podcast dialogue.

Renders one dialogue turn at a time with Kokoro, mapping the host and guest
speakers to configured voices.
"""

import io
import os
import re
from typing import Optional, List, Dict, Tuple, Union

import numpy as np
import soundfile as sf
from kokoro_onnx import Kokoro

from kokoro_podcast.jobs.models import DialogueTurn, SynthesizedTurn, Speaker
from kokoro_podcast.jobs.pipeline import SynthesisError

# Supported languages (hardcoded as kokoro-onnx 0.4.9+ doesn't expose get_languages())
SUPPORTED_LANGUAGES = [
    'en-us',   # American English
    'en-gb',   # British English
    'ja',      # Japanese
    'zh',      # Mandarin Chinese
    'ko',      # Korean
    'es',      # Spanish
    'fr',      # French
    'hi',      # Hindi
    'it',      # Italian
    'pt-br',   # Brazilian Portuguese
]

_SENTENCE_END = re.compile(r'(?<=[.!?])\s+')

VoiceStyle = Union[str, np.ndarray]


class KokoroEngine:
    """Kokoro TTS engine used as the synthesis stage.

    The model is loaded lazily on first use so the service can start (and
    accept submissions) before the ONNX files are read.
    """

    def __init__(
        self,
        model_path: str = "kokoro-v1.0.onnx",
        voices_path: str = "voices-v1.0.bin",
        voices: Optional[Dict[Speaker, str]] = None,
        speed: float = 1.0,
        lang: str = "en-us",
        use_gpu: bool = False,
        provider: Optional[str] = None
    ):
        """Initialize the engine.

        Args:
            model_path: Path to the Kokoro ONNX model file
            voices_path: Path to the voices binary file
            voices: Voice name (or "a:60,b:40" blend) per speaker
            speed: Speech speed multiplier
            lang: Language code
            use_gpu: If True, automatically select the best available GPU provider
            provider: Explicit ONNX provider name. Takes precedence over use_gpu.

        Raises:
            ValueError: If the language is not supported
        """
        self.model_path = model_path
        self.voices_path = voices_path
        self.voices = voices or {Speaker.HOST: "af_sarah", Speaker.GUEST: "am_adam"}
        self.speed = speed
        self.lang = self.validate_language(lang)
        self.use_gpu = use_gpu
        self.provider = provider

        self.kokoro: Optional[Kokoro] = None
        self._styles: Dict[Speaker, VoiceStyle] = {}

    def load_model(self):
        """Load the Kokoro model.

        Raises:
            FileNotFoundError: If model or voices files don't exist
            RuntimeError: If a GPU was requested but none is available
        """
        if self.kokoro is not None:
            return

        if not os.path.exists(self.model_path):
            raise FileNotFoundError(f"Model file not found: {self.model_path}")
        if not os.path.exists(self.voices_path):
            raise FileNotFoundError(f"Voices file not found: {self.voices_path}")

        if self.provider:
            os.environ['ONNX_PROVIDER'] = self.provider
        elif self.use_gpu:
            selected_provider = self._select_gpu_provider()
            if selected_provider:
                os.environ['ONNX_PROVIDER'] = selected_provider
            else:
                raise RuntimeError("GPU requested but no compatible GPU provider found")

        self.kokoro = Kokoro(self.model_path, self.voices_path)

    def _select_gpu_provider(self) -> Optional[str]:
        """Select the best available GPU provider.

        Returns:
            Provider name or None if no GPU available
        """
        try:
            import onnxruntime as ort
            available_providers = ort.get_available_providers()
        except ImportError:
            return None

        # Priority: CUDA > TensorRT > ROCm > CoreML
        for name in ('CUDAExecutionProvider', 'TensorrtExecutionProvider',
                     'ROCMExecutionProvider', 'CoreMLExecutionProvider'):
            if name in available_providers:
                return name
        return None

    def get_voices(self) -> List[str]:
        """Get list of available voices."""
        self.load_model()
        return list(self.kokoro.get_voices())

    @staticmethod
    def validate_language(lang: str) -> str:
        if lang not in SUPPORTED_LANGUAGES:
            supported = ', '.join(sorted(SUPPORTED_LANGUAGES))
            raise ValueError(f"Unsupported language: {lang}\nSupported: {supported}")
        return lang

    def validate_voice(self, voice: str) -> VoiceStyle:
        """Validate voice and handle voice blending.

        Args:
            voice: Voice name or blend specification (e.g., "voice1:60,voice2:40")

        Returns:
            Voice name string or blended voice style array

        Raises:
            ValueError: If voice is invalid
        """
        self.load_model()
        supported_voices = set(self.kokoro.get_voices())

        if ',' not in voice:
            if voice not in supported_voices:
                raise ValueError(f"Unsupported voice: {voice}")
            return voice

        names = []
        weights = []
        for pair in voice.split(','):
            name, _, weight = pair.partition(':')
            names.append(name.strip())
            weights.append(float(weight) if weight.strip() else 50.0)

        if len(names) != 2:
            raise ValueError("Voice blending requires exactly two voices")
        for name in names:
            if name not in supported_voices:
                raise ValueError(f"Unsupported voice: {name}")

        total = sum(weights)
        style1 = self.kokoro.get_voice_style(names[0])
        style2 = self.kokoro.get_voice_style(names[1])
        return np.add(style1 * (weights[0] / total), style2 * (weights[1] / total))

    def _style_for(self, speaker: Speaker) -> VoiceStyle:
        if speaker not in self._styles:
            self._styles[speaker] = self.validate_voice(self.voices[speaker])
        return self._styles[speaker]

    @staticmethod
    def chunk_text(text: str, chunk_size: int = 500) -> List[str]:
        """Split text into chunks at sentence boundaries.

        Sentences longer than chunk_size are split on word boundaries.
        """
        chunks = []
        current = ""

        for sentence in _SENTENCE_END.split(text.replace('\n', ' ').strip()):
            sentence = sentence.strip()
            if not sentence:
                continue

            pieces = [sentence]
            if len(sentence) > chunk_size:
                pieces = []
                piece = ""
                for word in sentence.split():
                    if piece and len(piece) + len(word) + 1 > chunk_size:
                        pieces.append(piece)
                        piece = word
                    else:
                        piece = f"{piece} {word}".strip()
                if piece:
                    pieces.append(piece)

            for piece in pieces:
                if current and len(current) + len(piece) + 1 > chunk_size:
                    chunks.append(current)
                    current = piece
                else:
                    current = f"{current} {piece}".strip()

        if current:
            chunks.append(current)
        return chunks

    def process_chunk(self, chunk: str, voice: VoiceStyle, depth: int = 0) -> Tuple[np.ndarray, int]:
        """Synthesize a single chunk, halving it when the phoneme limit is hit."""
        try:
            samples, sample_rate = self.kokoro.create(
                chunk, voice=voice, speed=self.speed, lang=self.lang
            )
            return np.asarray(samples, dtype=np.float32), sample_rate
        except Exception as e:
            words = chunk.split()
            if "index 510 is out of bounds" not in str(e) or len(words) < 2 or depth > 4:
                raise

        middle = len(words) // 2
        first, sample_rate = self.process_chunk(' '.join(words[:middle]), voice, depth + 1)
        second, _ = self.process_chunk(' '.join(words[middle:]), voice, depth + 1)
        return np.concatenate([first, second]), sample_rate

    def synthesize_turn(self, turn: DialogueTurn) -> SynthesizedTurn:
        """Render one dialogue turn to WAV bytes.

        Raises:
            SynthesisError: If the text produced no audio or Kokoro failed
        """
        try:
            self.load_model()
            voice = self._style_for(turn.speaker)

            parts = []
            sample_rate = None
            for chunk in self.chunk_text(turn.text):
                samples, sample_rate = self.process_chunk(chunk, voice)
                parts.append(samples)
        except SynthesisError:
            raise
        except Exception as e:
            raise SynthesisError(f"Failed to generate audio for {turn.speaker.value}: {e}") from e

        if not parts or sample_rate is None:
            raise SynthesisError(f"No audio generated for {turn.speaker.value}")

        samples = np.concatenate(parts)
        return SynthesizedTurn(
            speaker=turn.speaker,
            text=turn.text,
            audio=encode_wav(samples, sample_rate),
            duration=len(samples) / float(sample_rate),
        )


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples as 16-bit PCM WAV bytes."""
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format='WAV', subtype='PCM_16')
    return buffer.getvalue()
