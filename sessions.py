from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from itsdangerous import BadData, BadSignature, SignatureExpired, URLSafeTimedSerializer

from alerts import AlertEvaluator, NotificationFeed, NotificationSink, ToastQueue
from config import get_settings
from database import SessionFactory
from email_alerts import EmailDispatcher
from formatting import CurrencyFormat

logger = logging.getLogger(__name__)

SESSION_COOKIE = "financeos_session"


class InvalidSession(Exception):
    pass


class SessionExpired(InvalidSession):
    def __init__(self, message: str, session_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.session_id = session_id


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="financeos-session")


def issue_token(user_id: int, session_id: str) -> str:
    return _serializer().dumps({"u": user_id, "s": session_id})


def _expired_session_id(exc: SignatureExpired) -> Optional[str]:
    # The signature was valid, only too old, so the payload can be trusted.
    try:
        data = _serializer().load_payload(exc.payload)
    except BadData:
        return None
    session_id = data.get("s") if isinstance(data, dict) else None
    return session_id if isinstance(session_id, str) else None


def read_token(token: str, max_age_hours: Optional[int] = None) -> tuple[int, str]:
    if max_age_hours is None:
        max_age_hours = get_settings().session_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired as exc:
        raise SessionExpired("Session expired", _expired_session_id(exc)) from exc
    except BadSignature as exc:
        raise InvalidSession("Invalid session") from exc

    user_id, session_id = data.get("u"), data.get("s")
    if not isinstance(user_id, int) or not isinstance(session_id, str):
        raise InvalidSession("Invalid session")
    return user_id, session_id


@dataclass
class AlertSession:
    session_id: str
    user_id: int
    evaluator: AlertEvaluator
    toasts: ToastQueue
    feed: NotificationFeed
    expires_at: float


class SessionRegistry:
    """Owns one alert session (evaluator, toasts, feed) per login.

    Nothing here is persisted: a new login starts with an empty fired set.
    Entries last as long as their token; expired ones are dropped when their
    token is next presented and swept whenever a new session opens.
    """

    def __init__(
        self,
        *,
        dispatcher: Optional[EmailDispatcher] = None,
        session_factory: Optional[SessionFactory] = None,
        currency: Optional[CurrencyFormat] = None,
        max_age_hours: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.currency = currency
        if max_age_hours is None:
            max_age_hours = get_settings().session_max_age_hours
        self.max_age_hours = max_age_hours
        self.clock = clock
        self._sessions: dict[str, AlertSession] = {}
        self._lock = threading.Lock()

    def open(self, user_id: int) -> tuple[AlertSession, str]:
        self.sweep()
        session_id = secrets.token_urlsafe(16)
        toasts = ToastQueue()
        feed = NotificationFeed(user_id, self.session_factory)
        sink = NotificationSink(
            user_id,
            toasts=toasts,
            feed=feed,
            dispatcher=self.dispatcher,
            session_factory=self.session_factory,
        )
        alert_session = AlertSession(
            session_id=session_id,
            user_id=user_id,
            evaluator=AlertEvaluator(sink, currency=self.currency),
            toasts=toasts,
            feed=feed,
            expires_at=self.clock() + self.max_age_hours * 3600,
        )
        feed.refresh()
        with self._lock:
            self._sessions[session_id] = alert_session
        logger.info(f"session_opened: user_id={user_id}")
        return alert_session, issue_token(user_id, session_id)

    def resolve(self, token: str) -> AlertSession:
        try:
            user_id, session_id = read_token(token, self.max_age_hours)
        except SessionExpired as exc:
            if exc.session_id is not None:
                self._drop(exc.session_id, reason="expired")
            raise
        with self._lock:
            alert_session = self._sessions.get(session_id)
        if alert_session is None or alert_session.user_id != user_id:
            raise InvalidSession("Unknown session")
        if alert_session.expires_at <= self.clock():
            self._drop(session_id, reason="expired")
            raise SessionExpired("Session expired", session_id)
        return alert_session

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [
                session_id
                for session_id, alert_session in self._sessions.items()
                if alert_session.expires_at <= now
            ]
        for session_id in expired:
            self._drop(session_id, reason="expired")
        return len(expired)

    def close(self, session_id: str) -> None:
        self._drop(session_id, reason="closed")

    def _drop(self, session_id: str, *, reason: str) -> None:
        with self._lock:
            alert_session = self._sessions.pop(session_id, None)
        if alert_session is not None:
            alert_session.evaluator.reset()
            logger.info(f"session_{reason}: user_id={alert_session.user_id}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
