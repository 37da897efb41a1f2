"""Celery tasks for ingestion and validation."""
