"""Gradio web interface for Kokoro Podcast.

Submit notes for podcast generation and watch the background job queue.
The job manager runs in the same process as the UI.
"""

import datetime
from typing import Optional, Tuple, List

try:
    import gradio as gr
except ImportError:
    raise ImportError(
        "Gradio is required for the web UI. Install with: pip install gradio"
    )

from kokoro_podcast.config import ServiceConfig
from kokoro_podcast.jobs import (
    JobManager,
    JobNotFoundError,
    JobStatus,
    PodcastJob,
    PodcastFormat,
)

NO_JOB = "No job selected"


class PodcastUI:
    """Gradio UI wrapper around a JobManager."""

    def __init__(self, manager: JobManager):
        self.manager = manager

    def submit_podcast(
        self,
        note_id: str,
        note_content: str,
        user_id: str,
        duration: str
    ) -> Tuple[str, str]:
        """Submit a note for podcast generation.

        Returns:
            Tuple of (job ID, status message)
        """
        try:
            job = self.manager.submit_job(note_id, note_content, user_id, duration)
        except ValueError as e:
            return "", f"⚠ {e}"

        status_msg = f"""✓ Podcast generation started!

Job ID: {job.job_id}
Note: {job.note_id}
Format: {job.submission.duration.value}

The podcast will be generated in the background.
Use "Refresh Status" to monitor progress.
"""
        return job.job_id, status_msg

    def get_all_jobs_display(self) -> Tuple[str, List[List[str]]]:
        """Get the queue summary and a row per job, newest first."""
        stats = self.manager.get_statistics()
        jobs = self.manager.get_all_jobs(limit=50)

        summary = f"""📊 Job Queue Summary

🔵 Queued: {stats[JobStatus.QUEUED.value]}
⚙️ Processing: {stats[JobStatus.PROCESSING.value]}
✅ Completed: {stats[JobStatus.COMPLETED.value]}
❌ Failed: {stats[JobStatus.FAILED.value]}

Total: {stats['total']} jobs
"""
        return summary, [self._job_row(job) for job in jobs]

    def get_user_jobs_display(self, user_id: str) -> List[List[str]]:
        if not user_id or not user_id.strip():
            return []
        return [self._job_row(job) for job in self.manager.get_user_jobs(user_id.strip())]

    def get_job_details(self, job_id: Optional[str]) -> str:
        """Format everything known about one job."""
        if not job_id or job_id == NO_JOB:
            return "Please select a job"

        job = self.manager.get_job(job_id.strip())
        if job is None:
            return f"Job not found: {job_id}"

        details = f"""📋 Job Details

Job ID: {job.job_id}
Status: {job.status.value.upper()}
Created: {self._format_timestamp(job.created_at)}

📝 Request:
  Note: {job.note_id}
  User: {job.user_id}
  Format: {job.submission.duration.value}

📊 Progress:
  Percentage: {job.progress}%
  Current: {job.current_step or 'N/A'}
  {job.format_status_message()}
"""

        elapsed = job.get_elapsed_time()
        if elapsed is not None:
            details += f"\n⏱️ Processing Time: {elapsed:.1f}s\n"

        if job.result is not None:
            details += f"""
🎧 Result:
  Podcast ID: {job.result.podcast_id}
  Audio: {job.result.audio_url}
  Duration: {job.result.audio_duration:.1f}s
  Segments: {len(job.result.transcript)}
"""

        if job.failure_reason is not None:
            details += f"\n❌ Error:\n{job.failure_reason}\n"

        return details

    def get_job_log_display(self, job_id: Optional[str]) -> str:
        if not job_id or job_id == NO_JOB:
            return ""
        try:
            entries = self.manager.get_job_logs(job_id.strip(), limit=50)
        except JobNotFoundError:
            return ""

        lines = []
        for entry in reversed(entries):
            lines.append(
                f"[{self._format_timestamp(entry['timestamp'])}] "
                f"{entry['level'].upper()}: {entry['message']}"
            )
        return "\n".join(lines)

    def _job_row(self, job: PodcastJob) -> List[str]:
        return [
            job.job_id,
            job.status.value.upper(),
            job.note_id,
            job.user_id,
            f"{job.progress}%",
            job.current_step or "",
            self._format_timestamp(job.created_at),
        ]

    @staticmethod
    def _format_timestamp(timestamp: float) -> str:
        """Format Unix timestamp as readable string."""
        dt = datetime.datetime.fromtimestamp(timestamp)
        return dt.strftime("%Y-%m-%d %H:%M:%S")


JOB_HEADERS = ["Job ID", "Status", "Note", "User", "Progress", "Step", "Created"]


def create_ui(manager: JobManager) -> gr.Blocks:
    """Create the Gradio UI interface.

    Args:
        manager: Running job manager

    Returns:
        Gradio Blocks interface
    """
    ui = PodcastUI(manager)

    with gr.Blocks(title="Kokoro Podcast", theme=gr.themes.Soft()) as demo:
        gr.Markdown(
            """
            # 🎙️ Kokoro Podcast

            Turn your notes into a two-voice podcast episode.
            """
        )

        with gr.Tabs():
            # ===== TAB 1: Generate =====
            with gr.Tab("Generate"):
                with gr.Row():
                    with gr.Column(scale=2):
                        note_content = gr.Textbox(
                            label="Note Content",
                            placeholder="Paste your notes here (at least 10 characters)...",
                            lines=12
                        )
                    with gr.Column(scale=1):
                        note_id = gr.Textbox(label="Note ID")
                        user_id = gr.Textbox(label="User ID")
                        duration = gr.Radio(
                            choices=[fmt.value for fmt in PodcastFormat],
                            value=PodcastFormat.SHORT.value,
                            label="Length",
                            info="short: 3-5 minutes, long: 8-10 minutes"
                        )

                submit_btn = gr.Button("🎧 Generate Podcast", variant="primary", size="lg")
                submitted_job = gr.Textbox(label="Job ID", interactive=False)
                submit_status = gr.Textbox(label="Result", lines=8, interactive=False)

                submit_btn.click(
                    fn=ui.submit_podcast,
                    inputs=[note_id, note_content, user_id, duration],
                    outputs=[submitted_job, submit_status]
                )

            # ===== TAB 2: My Podcasts =====
            with gr.Tab("My Podcasts"):
                with gr.Row():
                    lookup_user = gr.Textbox(label="User ID")
                    lookup_btn = gr.Button("🔍 Show Jobs", variant="secondary")

                user_jobs = gr.Dataframe(
                    headers=JOB_HEADERS,
                    label="Jobs (newest first)",
                    interactive=False,
                    wrap=True
                )

                lookup_btn.click(
                    fn=ui.get_user_jobs_display,
                    inputs=[lookup_user],
                    outputs=[user_jobs]
                )

            # ===== TAB 3: Job Status Dashboard =====
            with gr.Tab("Job Status"):
                gr.Markdown("""
                ### 📊 Background Job Queue
                Jobs are processed one at a time, oldest first.
                Finished jobs are kept for 24 hours.
                """)

                refresh_btn = gr.Button("🔄 Refresh Status", variant="secondary")

                job_summary = gr.Textbox(
                    label="Queue Summary",
                    lines=8,
                    interactive=False
                )

                job_list = gr.Dataframe(
                    headers=JOB_HEADERS,
                    label="All Jobs",
                    interactive=False,
                    wrap=True
                )

                selected_job = gr.Dropdown(
                    label="Select Job",
                    choices=[NO_JOB],
                    value=NO_JOB,
                    interactive=True
                )

                job_details = gr.Textbox(
                    label="Job Details",
                    lines=15,
                    interactive=False
                )

                job_log = gr.Textbox(
                    label="Job Log",
                    lines=10,
                    interactive=False
                )

                # Wire up events
                def refresh_jobs_ui():
                    summary, rows = ui.get_all_jobs_display()
                    job_ids = [NO_JOB] + [row[0] for row in rows]
                    return summary, rows, gr.update(choices=job_ids)

                refresh_btn.click(
                    fn=refresh_jobs_ui,
                    outputs=[job_summary, job_list, selected_job]
                ).then(
                    fn=ui.get_job_details,
                    inputs=[selected_job],
                    outputs=[job_details]
                )

                selected_job.change(
                    fn=ui.get_job_details,
                    inputs=[selected_job],
                    outputs=[job_details]
                ).then(
                    fn=ui.get_job_log_display,
                    inputs=[selected_job],
                    outputs=[job_log]
                )

                # Initial load
                demo.load(
                    fn=refresh_jobs_ui,
                    outputs=[job_summary, job_list, selected_job]
                )

    return demo


def launch_ui(
    server_name: str = "127.0.0.1",
    server_port: int = 7860,
    share: bool = False,
    env_file: str = ".env"
):
    """Launch the Gradio web UI with the background job manager.

    When used as a console entry point (kokoro-podcast), it parses
    command-line arguments automatically.

    Args:
        server_name: Server hostname
        server_port: Server port
        share: Create public share link
        env_file: Path to a .env file with service settings
    """
    import argparse
    import logging
    import sys

    if len(sys.argv) > 1:
        parser = argparse.ArgumentParser(description="Launch Kokoro Podcast Web UI")
        parser.add_argument("--env-file", default=env_file, help="Path to .env file")
        parser.add_argument("--model", help="Path to Kokoro model file")
        parser.add_argument("--voices", help="Path to voices file")
        parser.add_argument("--server-name", default=server_name, help="Server hostname")
        parser.add_argument("--server-port", type=int, default=server_port, help="Server port")
        parser.add_argument("--share", action="store_true", help="Create public share link")
        parser.add_argument("--gpu", action="store_true", help="Enable GPU acceleration")
        parser.add_argument("--debug", action="store_true", help="Enable debug logging")
        args = parser.parse_args()

        env_file = args.env_file
        server_name = args.server_name
        server_port = args.server_port
        share = args.share
    else:
        args = None

    logging.basicConfig(
        level=logging.DEBUG if args is not None and args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = ServiceConfig.from_env(env_file)
    if args is not None:
        if args.model:
            config.model_path = args.model
        if args.voices:
            config.voices_path = args.voices
        if args.gpu:
            config.use_gpu = True

    missing = config.missing_settings()
    if missing:
        print(f"Warning: missing settings, jobs will fail until set: {', '.join(missing)}")

    print("\n" + "="*60)
    print("Starting Kokoro Podcast UI with Background Job Queue")
    print("="*60)

    with JobManager(config) as manager:
        print(f"Worker started ({manager.worker.worker_id})")
        if manager.notifier.enabled:
            print(f"Webhook: {config.webhook_url}")
        print("="*60 + "\n")

        demo = create_ui(manager)
        try:
            demo.launch(
                server_name=server_name,
                server_port=server_port,
                share=share,
                show_error=True
            )
        except KeyboardInterrupt:
            print("\nShutting down gracefully...")


if __name__ == "__main__":
    launch_ui()
