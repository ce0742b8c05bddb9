"""Terminal rendering for background tasks."""
