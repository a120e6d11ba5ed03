"""HTTP API for triggering runs and discovery."""
