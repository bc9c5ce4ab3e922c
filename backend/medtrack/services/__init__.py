"""Business logic services for MedTrack.

This package intentionally avoids eager imports to prevent circular import
chains between schemas and services.
"""

from importlib import import_module

__all__ = [
    # Collection store
    "CollectionStore",
    "InMemoryCollectionStore",
    "SQLCollectionStore",
    # Session
    "SessionContext",
    "StaticSession",
    # Patients
    "add_patient",
    "list_patients",
    "remove_patient",
    "set_status",
    # Reminders
    "ReminderSync",
    "start_sync",
]

_LAZY_IMPORTS = {
    "CollectionStore": ("medtrack.services.collection_store", "CollectionStore"),
    "InMemoryCollectionStore": (
        "medtrack.services.collection_store",
        "InMemoryCollectionStore",
    ),
    "SQLCollectionStore": ("medtrack.services.collection_store", "SQLCollectionStore"),
    "SessionContext": ("medtrack.services.session", "SessionContext"),
    "StaticSession": ("medtrack.services.session", "StaticSession"),
    "add_patient": ("medtrack.services.patients", "add_patient"),
    "list_patients": ("medtrack.services.patients", "list_patients"),
    "remove_patient": ("medtrack.services.patients", "remove_patient"),
    "set_status": ("medtrack.services.patients", "set_status"),
    "ReminderSync": ("medtrack.services.reminders", "ReminderSync"),
    "start_sync": ("medtrack.services.reminders", "start_sync"),
}


def __getattr__(name: str):
    target = _LAZY_IMPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)
