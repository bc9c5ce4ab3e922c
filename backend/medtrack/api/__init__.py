"""API routers for MedTrack."""

from medtrack.api import health, patients, reminders

__all__ = ["health", "patients", "reminders"]
