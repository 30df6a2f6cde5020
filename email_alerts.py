from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import get_settings
from schemas import BudgetAlertEmailIn

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
SUBJECT = "⚠️ Budget Limit Exceeded — FinanceOS Alert"
FUNCTION_SECRET_HEADER = "X-Function-Secret"

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

# (url, headers, body) -> (status, decoded JSON payload)
Transport = Callable[[str, dict, dict], tuple[int, dict]]
Sender = Callable[[dict], object]


def http_post_json(
    url: str, headers: dict, body: dict, *, timeout: float = 10.0
) -> tuple[int, dict]:
    data = json.dumps(body).encode("utf-8")
    req = Request(
        url,
        data=data,
        method="POST",
        headers={"Content-Type": "application/json", "Accept": "application/json", **headers},
    )
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.status, _decode(resp.read())
    except HTTPError as exc:
        return exc.code, _decode(exc.read())
    except (URLError, TimeoutError) as exc:
        raise RuntimeError(f"Failed to reach {url}") from exc


def _decode(raw: bytes) -> dict:
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {"raw": raw.decode("utf-8", errors="replace")}
    return payload if isinstance(payload, dict) else {"data": payload}


def default_display_name(email: str) -> str:
    return email.split("@")[0]


def render_budget_alert_email(
    name: str, message: str, budget_info: Optional[str] = None, *, app_url: str
) -> str:
    template = _env.get_template("budget_alert_email.html")
    return template.render(
        name=name, message=message, budget_info=budget_info, app_url=app_url
    )


class BudgetAlertMailer:
    """Renders a budget alert email and hands it to Resend."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        *,
        app_url: Optional[str] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.from_email = from_email or settings.from_email
        self.app_url = app_url or settings.app_url
        self.transport = transport or (
            lambda url, headers, body: http_post_json(
                url, headers, body, timeout=settings.email_timeout_secs
            )
        )

    def send_alert(self, data: BudgetAlertEmailIn) -> dict:
        if not data.email:
            raise ValueError("email is required")

        if not self.api_key:
            logger.warning("budget_alert_email: RESEND api key not set, skipping send")
            return {"sent": False, "reason": "no_api_key"}

        name = data.display_name or default_display_name(data.email)
        html = render_budget_alert_email(
            name, data.message, data.budget_info, app_url=self.app_url
        )
        status, result = self.transport(
            RESEND_URL,
            {"Authorization": f"Bearer {self.api_key}"},
            {
                "from": f"FinanceOS <{self.from_email}>",
                "to": [data.email],
                "subject": SUBJECT,
                "html": html,
            },
        )
        if status >= 400:
            logger.error(f"budget_alert_email: provider_status={status} error={result}")
            return {"sent": False, "error": result}
        return {"sent": True, "id": result.get("id")}


def function_sender(
    url: str,
    *,
    timeout: float,
    secret: Optional[str] = None,
    transport: Optional[Transport] = None,
) -> Sender:
    """Sender that posts the alert payload to a deployed email function."""
    headers = {FUNCTION_SECRET_HEADER: secret} if secret else {}
    post = transport or (
        lambda url, headers, body: http_post_json(url, headers, body, timeout=timeout)
    )

    def send(payload: dict) -> dict:
        status, result = post(url, headers, payload)
        if status >= 400:
            raise RuntimeError(f"Email function returned {status}: {result}")
        return result

    return send


def mailer_sender(mailer: BudgetAlertMailer) -> Sender:
    def send(payload: dict) -> dict:
        return mailer.send_alert(BudgetAlertEmailIn.model_validate(payload))

    return send


def _log_outcome(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning(f"budget_alert_email: dispatch failed: {exc!r}")


class EmailDispatcher:
    """Runs email sends on a background pool.

    ``dispatch`` never blocks on the send and never raises its errors; the
    returned future is for callers that want to observe the outcome. Failures
    are only logged.
    """

    def __init__(self, send: Sender, *, max_workers: int = 2) -> None:
        self._send = send
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="email-alert"
        )

    def dispatch(self, email: str, display_name: str, message: str) -> Future:
        payload = {"email": email, "displayName": display_name, "message": message}
        future = self._executor.submit(self._send, payload)
        future.add_done_callback(_log_outcome)
        return future

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


def build_dispatcher() -> EmailDispatcher:
    settings = get_settings()
    if settings.alert_function_url:
        send = function_sender(
            settings.alert_function_url,
            timeout=settings.email_timeout_secs,
            secret=settings.alert_function_secret,
        )
    else:
        send = mailer_sender(BudgetAlertMailer())
    return EmailDispatcher(send, max_workers=settings.email_workers)
