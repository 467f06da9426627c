"""Kokoro Podcast: turn notes into two-voice podcast episodes.

Submissions are queued and processed in the background by a single worker:
an LLM writes a host/guest script, Kokoro voices each line, the segments
are combined and published, and a webhook reports the outcome.
"""

__version__ = "1.0.0"


def main():
    """Console entry point: start the job manager and the web UI."""
    from kokoro_podcast.ui.gradio_app import launch_ui
    launch_ui()


if __name__ == "__main__":
    main()
