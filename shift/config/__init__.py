"""Settings and prompts."""
