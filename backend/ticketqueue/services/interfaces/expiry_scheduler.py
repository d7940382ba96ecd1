"""
Offer expiry scheduler interface.

Each granted offer registers exactly one deferred callback for its expiry
time. Delivery is at-least-once; the handler re-reads the entry and is a
no-op unless the entry is still offered.
"""

from abc import ABC, abstractmethod


class ExpiryScheduler(ABC):

    @abstractmethod
    async def schedule(self, entry_id: int, event_id: int, delay_ms: int) -> None:
        """
        Register an expiry callback for a waiting list entry.

        Args:
            entry_id: Waiting list entry holding the offer
            event_id: Event whose queue is nudged after expiry
            delay_ms: Milliseconds until the offer lapses
        """
        pass

    async def start(self) -> None:
        """Hook for schedulers that own a worker."""
        pass

    async def shutdown(self) -> None:
        """Stop delivering callbacks. Pending offers are left to the sweep."""
        pass
