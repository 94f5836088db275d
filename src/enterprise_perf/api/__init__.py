"""FastAPI integration for the performance layer."""
