"""Logging and progress-event plumbing."""
