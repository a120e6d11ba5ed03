"""Core pipeline components: models, fetching, storage and orchestration."""
