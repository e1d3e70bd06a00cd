"""Group chat session used by the dashboard."""
