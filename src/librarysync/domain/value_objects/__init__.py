"""Domain value objects."""

from librarysync.domain.value_objects.cancellation import CancellationToken

__all__ = ["CancellationToken"]
