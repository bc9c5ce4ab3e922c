"""MedTrack: patient medication schedules with live reminder state."""
