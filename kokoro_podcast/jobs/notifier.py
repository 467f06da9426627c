"""
Webhook notification of finished jobs.

Delivery is best-effort and at-most-once: failures are logged, never raised,
never retried.
"""

import logging
import queue
import threading
from typing import Optional, Dict

import requests

from .models import JobEvent

log = logging.getLogger(__name__)

SECRET_HEADER = "X-Webhook-Secret"


class WebhookNotifier:
    """
    Posts a JSON payload for each terminal job to one configured endpoint.

    handle() is the worker listener: it only queues the event. A background
    thread does the HTTP call, so the worker never waits on the network.
    """

    def __init__(
        self,
        url: Optional[str],
        secret: str = "",
        timeout: float = 10.0,
        user_agent: str = "kokoro-podcast"
    ):
        """
        Args:
            url: Endpoint to POST to (None or empty disables delivery)
            secret: Pre-shared value sent in the X-Webhook-Secret header
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header value
        """
        self.url = url or None
        self.secret = secret or ""
        self.timeout = timeout
        self.user_agent = user_agent

        self._events: "queue.Queue[Optional[JobEvent]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.url is not None

    def _headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            SECRET_HEADER: self.secret,
            'User-Agent': self.user_agent,
        }

    def deliver(self, event: JobEvent) -> bool:
        """
        Send one event synchronously.

        Returns:
            True if the endpoint answered 2xx, False otherwise
        """
        if not self.enabled:
            log.info("No webhook URL configured, skipping %s for %s", event.kind.value, event.job_id)
            return False

        log.info("Sending %s webhook for %s to %s", event.kind.value, event.job_id, self.url)

        try:
            response = requests.post(
                self.url,
                json=event.to_payload(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error("Webhook delivery failed for %s: %s", event.job_id, e)
            return False

        if 200 <= response.status_code < 300:
            log.info("Webhook delivered for %s (%s)", event.job_id, response.status_code)
            return True

        log.warning("Webhook for %s returned status %s", event.job_id, response.status_code)
        return False

    # Background delivery

    def handle(self, event: JobEvent):
        """Queue an event for delivery. Safe to call from the worker thread."""
        self._ensure_thread()
        self._events.put(event)

    def _ensure_thread(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run,
                    name="kokoro-podcast-notifier",
                    daemon=True
                )
                self._thread.start()

    def _run(self):
        while True:
            event = self._events.get()
            try:
                if event is None:
                    return
                self.deliver(event)
            except Exception:
                log.exception("Unexpected error delivering webhook")
            finally:
                self._events.task_done()

    def flush(self):
        """Block until every queued event has been attempted."""
        self._events.join()

    def close(self, timeout: Optional[float] = None):
        """Deliver what is queued, then stop the delivery thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            self._events.put(None)
            thread.join(timeout)
