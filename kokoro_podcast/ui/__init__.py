"""Web interface for submitting and monitoring podcast jobs."""
