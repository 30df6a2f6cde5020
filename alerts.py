from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol

from database import SessionFactory, session_scope
from email_alerts import EmailDispatcher, default_display_name
from formatting import CurrencyFormat, to_decimal
from models import NotificationType
from schemas import NotificationOut
from services import NotificationService, ProfileService, SpendSnapshot

logger = logging.getLogger(__name__)

OVERALL_KEY = "overall"


def category_key(category: str) -> str:
    return f"category:{category}"


class Severity(str, Enum):
    error = "error"
    success = "success"
    info = "info"


@dataclass(frozen=True)
class Toast:
    id: int
    message: str
    severity: Severity


class ToastQueue:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: deque[Toast] = deque()
        self._ids = itertools.count(1)

    def notify(self, message: str, severity: Severity = Severity.info) -> None:
        with self._lock:
            self._pending.append(Toast(next(self._ids), message, Severity(severity)))

    def drain(self) -> list[Toast]:
        with self._lock:
            toasts = list(self._pending)
            self._pending.clear()
        return toasts


class NotificationFeed:
    """The session's cached notification list and unread badge count."""

    def __init__(self, user_id: int, session_factory: Optional[SessionFactory] = None) -> None:
        self.user_id = user_id
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._items: list[NotificationOut] = []
        self._unread_count = 0

    @property
    def items(self) -> list[NotificationOut]:
        with self._lock:
            return list(self._items)

    @property
    def unread_count(self) -> int:
        with self._lock:
            return self._unread_count

    def refresh(self) -> bool:
        try:
            with session_scope(self.session_factory) as session:
                rows = NotificationService(session).get_unread(self.user_id)
                items = [NotificationOut.model_validate(row) for row in rows]
        except Exception:
            logger.exception(f"notification_feed_refresh_failed: user_id={self.user_id}")
            return False
        with self._lock:
            self._items = items
            self._unread_count = sum(1 for item in items if not item.is_read)
        return True

    def push(self, item: NotificationOut) -> None:
        with self._lock:
            self._items.insert(0, item)
            self._unread_count += 1

    def mark_all_read(self) -> bool:
        try:
            with session_scope(self.session_factory) as session:
                NotificationService(session).mark_all_read(self.user_id)
        except Exception:
            logger.exception(f"notification_mark_all_read_failed: user_id={self.user_id}")
            return False
        with self._lock:
            self._items = [item.model_copy(update={"is_read": True}) for item in self._items]
            self._unread_count = 0
        return True


class Sink(Protocol):
    def fire(self, type: NotificationType, message: str) -> Optional[Future]: ...


class NotificationSink:
    """Fans one fired alert out to the toast, the notification log and email.

    Each step runs even when an earlier one failed, and nothing raised by a
    step escapes ``fire``.
    """

    def __init__(
        self,
        user_id: int,
        *,
        toasts: ToastQueue,
        feed: NotificationFeed,
        dispatcher: Optional[EmailDispatcher] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.user_id = user_id
        self.toasts = toasts
        self.feed = feed
        self.dispatcher = dispatcher
        self.session_factory = session_factory

    def fire(self, type: NotificationType, message: str) -> Optional[Future]:
        try:
            self.toasts.notify(message, Severity.error)
        except Exception:
            logger.exception(f"alert_toast_failed: user_id={self.user_id}")

        try:
            with session_scope(self.session_factory) as session:
                record = NotificationService(session).create(self.user_id, type, message)
                item = NotificationOut.model_validate(record)
            self.feed.push(item)
        except Exception:
            logger.exception(f"alert_persist_failed: user_id={self.user_id}")

        try:
            return self._dispatch_email(message)
        except Exception:
            logger.exception(f"alert_email_dispatch_failed: user_id={self.user_id}")
        return None

    def _dispatch_email(self, message: str) -> Optional[Future]:
        if self.dispatcher is None:
            return None
        with session_scope(self.session_factory) as session:
            profile = ProfileService(session).get(self.user_id)
            if not profile or not profile.email_notifications or not profile.email:
                return None
            email = profile.email
            display_name = profile.display_name or default_display_name(email)
        return self.dispatcher.dispatch(email, display_name, message)


@dataclass(frozen=True)
class FireEvent:
    key: str
    type: NotificationType
    message: str


class AlertEvaluator:
    """Decides which budget limits were just crossed for one user session.

    A key sits in the fired set while its limit is exceeded, so an alert
    fires once per exceeded episode and re-arms when spending drops back to
    or below the limit. The set lives only as long as the evaluator.
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        *,
        currency: Optional[CurrencyFormat] = None,
    ) -> None:
        self.sink = sink
        self.currency = currency or CurrencyFormat.from_settings()
        self._fired: set[str] = set()
        self._lock = threading.Lock()

    @property
    def fired(self) -> frozenset[str]:
        return frozenset(self._fired)

    def reset(self) -> None:
        with self._lock:
            self._fired.clear()

    def evaluate(self, snapshot: SpendSnapshot) -> list[FireEvent]:
        # Held for the whole pass, sink calls included.
        with self._lock:
            events: list[FireEvent] = []

            total_spent = to_decimal(snapshot.total_spent) or Decimal(0)
            monthly_limit = to_decimal(snapshot.monthly_limit) or Decimal(0)
            if monthly_limit > 0 and total_spent > monthly_limit:
                if OVERALL_KEY not in self._fired:
                    self._fired.add(OVERALL_KEY)
                    message = (
                        "⚠️ Monthly budget exceeded! "
                        f"Spent {self.currency.format(total_spent)} "
                        f"of {self.currency.format(monthly_limit)} limit."
                    )
                    events.append(self._fire(OVERALL_KEY, message))
            else:
                self._fired.discard(OVERALL_KEY)

            for category, raw_limit in snapshot.category_limits.items():
                limit = to_decimal(raw_limit)
                if limit is None or limit <= 0:
                    continue
                spent = to_decimal(snapshot.category_spending.get(category)) or Decimal(0)
                key = category_key(category)

                if spent > limit:
                    if key not in self._fired:
                        self._fired.add(key)
                        message = (
                            f'⚠️ "{category}" budget exceeded! '
                            f"Spent {self.currency.format(spent)} "
                            f"of {self.currency.format(limit)} limit."
                        )
                        events.append(self._fire(key, message))
                else:
                    self._fired.discard(key)

            return events

    def _fire(self, key: str, message: str) -> FireEvent:
        event = FireEvent(key=key, type=NotificationType.budget_alert, message=message)
        logger.info(f"budget_alert_fired: key={key}")
        if self.sink is not None:
            try:
                self.sink.fire(event.type, event.message)
            except Exception:
                logger.exception(f"budget_alert_sink_failed: key={key}")
        return event
