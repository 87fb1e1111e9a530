"""FastAPI integration, logging and the example application."""
