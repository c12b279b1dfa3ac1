"""FastAPI server for Relayhub."""
