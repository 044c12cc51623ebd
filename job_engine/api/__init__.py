"""FastAPI service exposing the job lifecycle manager."""
