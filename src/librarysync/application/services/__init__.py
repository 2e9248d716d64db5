"""Application services for the library sync engine."""

from librarysync.application.services.change_detector import ChangeDetector
from librarysync.application.services.library_reconciler import (
    LibraryReconciler,
    ReconcileOutcome,
)
from librarysync.application.services.library_sync_engine import LibrarySyncEngine
from librarysync.application.services.startup_controller import StartupController
from librarysync.application.services.subscription_hub import SubscriptionHub

__all__ = [
    "ChangeDetector",
    "LibraryReconciler",
    "LibrarySyncEngine",
    "ReconcileOutcome",
    "StartupController",
    "SubscriptionHub",
]
