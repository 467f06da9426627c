"""Artifact publication.

Stores the finished episode somewhere durable and returns its public location.
"""

import logging
import time
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config

from kokoro_podcast.jobs.pipeline import PublishError

log = logging.getLogger(__name__)

CONTENT_TYPES = {
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'm4a': 'audio/mp4',
}


def artifact_name(name_hint: str, extension: str, timestamp_ms: Optional[int] = None) -> str:
    """File name for an episode, e.g. ``podcast-note42-1700000000000.mp3``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_hint = "".join(c if c.isalnum() or c in "-_" else "_" for c in name_hint) or "note"
    return f"podcast-{safe_hint}-{timestamp_ms}.{extension}"


class S3Publisher:
    """Uploads episodes to a public-read S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        prefix: str = "podcasts",
        timeout_seconds: int = 60,
        client=None
    ):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def client(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "s3",
                region_name=self.region,
                config=Config(connect_timeout=self.timeout_seconds, read_timeout=self.timeout_seconds),
            )
        return self._client

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def publish(self, audio: bytes, name_hint: str, extension: str = "mp3") -> str:
        """Upload audio and return its public URL.

        Raises:
            PublishError: If no bucket is configured or the upload fails
        """
        if not self.bucket:
            raise PublishError("S3_BUCKET_NAME environment variable is not set")

        key = f"{self.prefix}/{artifact_name(name_hint, extension)}"
        log.info("Uploading to S3: %s (%d bytes)", key, len(audio))

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=audio,
                ContentType=CONTENT_TYPES.get(extension, 'application/octet-stream'),
                ACL='public-read',
            )
        except Exception as e:
            raise PublishError(f"Failed to upload to S3: {e}") from e

        url = self.public_url(key)
        log.info("Upload complete: %s", url)
        return url


class LocalPublisher:
    """Writes episodes into a directory. Used when no bucket is configured."""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)

    def publish(self, audio: bytes, name_hint: str, extension: str = "mp3") -> str:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / artifact_name(name_hint, extension)
            path.write_bytes(audio)
        except OSError as e:
            raise PublishError(f"Failed to write audio: {e}") from e

        log.info("Saved audio to %s", path)
        return path.resolve().as_uri()
