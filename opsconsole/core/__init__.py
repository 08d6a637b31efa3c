"""Core building blocks: logging, settings, models and local state."""
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.logging import configure_logging
from opsconsole.core.models import (
    CategoryCount,
    EddStatus,
    ManualOrder,
    NdrNotes,
    NdrRecord,
    Order,
    RepeatLead,
    TrackingEntry,
)
from opsconsole.core.settings import Settings, load_settings
from opsconsole.core.store import LocalStore, authenticate, is_authenticated

__all__ = [
    "CategoryCount",
    "EddStatus",
    "LocalStore",
    "ManualOrder",
    "NdrNotes",
    "NdrRecord",
    "Order",
    "RemoteRequestError",
    "RepeatLead",
    "Settings",
    "TrackingEntry",
    "authenticate",
    "configure_logging",
    "is_authenticated",
    "load_settings",
]
