"""FastAPI surface for the survey draw session."""
