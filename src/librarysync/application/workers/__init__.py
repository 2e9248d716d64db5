"""Background workers."""

from librarysync.application.workers.library_poll_worker import LibraryPollWorker

__all__ = ["LibraryPollWorker"]
