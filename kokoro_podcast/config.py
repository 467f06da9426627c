"""Service configuration for Kokoro Podcast.

Settings come from environment variables, optionally loaded from a ``.env``
file first.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _default_data_dir() -> str:
    return str(Path.home() / ".kokoro-podcast")


@dataclass
class ServiceConfig:
    """Configuration for the podcast job service.

    Attributes:
        openai_api_key: Key for script generation
        openai_model: Chat model used to write the dialogue
        openai_base_url: Optional OpenAI-compatible endpoint
        script_temperature: Sampling temperature for script generation
        script_timeout: Seconds before a script request is abandoned
        model_path: Kokoro ONNX model file
        voices_path: Kokoro voices file
        host_voice: Kokoro voice for the host
        guest_voice: Kokoro voice for the guest
        speech_speed: Speech speed multiplier
        lang: Synthesis language code
        use_gpu: Select an ONNX GPU provider when available
        output_format: Final audio format (mp3, wav, m4a)
        s3_bucket: Bucket for published audio (empty publishes locally)
        aws_region: Region of the bucket
        output_dir: Directory used by the local publisher
        db_path: SQLite file for podcast records
        webhook_url: Completion/failure endpoint (empty disables it)
        webhook_secret: Value sent in the X-Webhook-Secret header
        webhook_timeout: Seconds before a webhook request is abandoned
        retention_hours: Jobs older than this are evicted
        sweep_interval_minutes: How often the retention sweep runs
        poll_interval: Seconds the worker waits before rescanning for jobs
    """
    openai_api_key: str = ""
    openai_model: str = "gpt-4.1"
    openai_base_url: Optional[str] = None
    script_temperature: float = 0.7
    script_timeout: float = 120.0

    model_path: str = "kokoro-v1.0.onnx"
    voices_path: str = "voices-v1.0.bin"
    host_voice: str = "af_sarah"
    guest_voice: str = "am_adam"
    speech_speed: float = 1.0
    lang: str = "en-us"
    use_gpu: bool = False

    output_format: str = "mp3"
    s3_bucket: str = ""
    aws_region: str = "us-east-1"
    output_dir: str = ""
    db_path: str = ""

    webhook_url: str = ""
    webhook_secret: str = ""
    webhook_timeout: float = 10.0

    retention_hours: float = 24.0
    sweep_interval_minutes: float = 60.0
    poll_interval: float = 1.0

    def __post_init__(self):
        """Fill path defaults under ~/.kokoro-podcast."""
        if not self.output_dir:
            self.output_dir = os.path.join(_default_data_dir(), "podcasts")
        if not self.db_path:
            self.db_path = os.path.join(_default_data_dir(), "podcasts.db")

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 3600

    @property
    def sweep_interval_seconds(self) -> float:
        return self.sweep_interval_minutes * 60

    @classmethod
    def from_env(cls, env_file: Optional[str] = ".env"):
        """Load configuration from environment variables.

        Environment variables:
            OPENAI_API_KEY, OPENAI_MODEL, OPENAI_BASE_URL
            PODCAST_SCRIPT_TEMPERATURE, PODCAST_SCRIPT_TIMEOUT
            KOKORO_MODEL_PATH, KOKORO_VOICES_PATH
            PODCAST_HOST_VOICE, PODCAST_GUEST_VOICE, PODCAST_SPEED, PODCAST_LANG
            KOKORO_USE_GPU ('true'/'false')
            PODCAST_OUTPUT_FORMAT, PODCAST_OUTPUT_DIR, PODCAST_DB_PATH
            S3_BUCKET_NAME, AWS_REGION
            WEBHOOK_URL, WEBHOOK_SECRET, WEBHOOK_TIMEOUT
            PODCAST_RETENTION_HOURS, PODCAST_SWEEP_INTERVAL_MINUTES
            PODCAST_POLL_INTERVAL

        Args:
            env_file: .env file to load first (None to skip)

        Returns:
            ServiceConfig instance with values from environment
        """
        if env_file and os.path.exists(env_file):
            load_dotenv(dotenv_path=env_file, override=False)

        return cls(
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4.1'),
            openai_base_url=os.getenv('OPENAI_BASE_URL') or None,
            script_temperature=float(os.getenv('PODCAST_SCRIPT_TEMPERATURE', '0.7')),
            script_timeout=float(os.getenv('PODCAST_SCRIPT_TIMEOUT', '120')),
            model_path=os.getenv('KOKORO_MODEL_PATH', 'kokoro-v1.0.onnx'),
            voices_path=os.getenv('KOKORO_VOICES_PATH', 'voices-v1.0.bin'),
            host_voice=os.getenv('PODCAST_HOST_VOICE', 'af_sarah'),
            guest_voice=os.getenv('PODCAST_GUEST_VOICE', 'am_adam'),
            speech_speed=float(os.getenv('PODCAST_SPEED', '1.0')),
            lang=os.getenv('PODCAST_LANG', 'en-us'),
            use_gpu=_env_bool('KOKORO_USE_GPU'),
            output_format=os.getenv('PODCAST_OUTPUT_FORMAT', 'mp3').lower(),
            s3_bucket=os.getenv('S3_BUCKET_NAME', ''),
            aws_region=os.getenv('AWS_REGION', 'us-east-1'),
            output_dir=os.getenv('PODCAST_OUTPUT_DIR', ''),
            db_path=os.getenv('PODCAST_DB_PATH', ''),
            webhook_url=os.getenv('WEBHOOK_URL', ''),
            webhook_secret=os.getenv('WEBHOOK_SECRET', ''),
            webhook_timeout=float(os.getenv('WEBHOOK_TIMEOUT', '10')),
            retention_hours=float(os.getenv('PODCAST_RETENTION_HOURS', '24')),
            sweep_interval_minutes=float(os.getenv('PODCAST_SWEEP_INTERVAL_MINUTES', '60')),
            poll_interval=float(os.getenv('PODCAST_POLL_INTERVAL', '1.0')),
        )

    def missing_settings(self) -> List[str]:
        """Names of required environment variables that are not set."""
        missing = []
        if not self.openai_api_key:
            missing.append('OPENAI_API_KEY')
        if not os.path.exists(self.model_path):
            missing.append('KOKORO_MODEL_PATH')
        if not os.path.exists(self.voices_path):
            missing.append('KOKORO_VOICES_PATH')
        return missing
