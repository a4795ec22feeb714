"""
Subscription State
==================

In-memory holder of the last-known subscription status, offering and user
id. Owned by ``SubscriptionUseCase``; all mutation goes through the three
setters, each serialized by one lock so reads never see a half-applied
write. Nothing is persisted.
"""

from __future__ import annotations

import threading
from typing import NamedTuple, Optional

from subscription.schemas.subscription import (
    INACTIVE,
    SubscriptionOffering,
    SubscriptionStatus,
)


class StateSnapshot(NamedTuple):
    status: SubscriptionStatus
    offerings: Optional[SubscriptionOffering]
    user_id: Optional[str]


class SubscriptionState:
    """Lock-guarded cache of subscription data."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status: SubscriptionStatus = INACTIVE
        self._offerings: Optional[SubscriptionOffering] = None
        self._user_id: Optional[str] = None

    # -- reads -------------------------------------------------------------

    @property
    def status(self) -> SubscriptionStatus:
        with self._lock:
            return self._status

    @property
    def offerings(self) -> Optional[SubscriptionOffering]:
        with self._lock:
            return self._offerings

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self._user_id

    def get_status(self) -> SubscriptionStatus:
        return self.status

    def snapshot(self) -> StateSnapshot:
        with self._lock:
            return StateSnapshot(self._status, self._offerings, self._user_id)

    # -- writes ------------------------------------------------------------

    def set_status(self, status: SubscriptionStatus) -> None:
        with self._lock:
            self._status = status

    def set_offerings(self, offerings: Optional[SubscriptionOffering]) -> None:
        with self._lock:
            self._offerings = offerings

    def set_user_id(self, user_id: Optional[str]) -> None:
        with self._lock:
            self._user_id = user_id
