import logging

import pytest

from email_alerts import (
    FUNCTION_SECRET_HEADER,
    RESEND_URL,
    SUBJECT,
    BudgetAlertMailer,
    EmailDispatcher,
    function_sender,
    mailer_sender,
    render_budget_alert_email,
)
from schemas import BudgetAlertEmailIn


class FakeTransport:
    def __init__(self, status: int = 200, payload: dict | None = None) -> None:
        self.status = status
        self.payload = payload if payload is not None else {"id": "email_123"}
        self.requests: list[tuple[str, dict, dict]] = []

    def __call__(self, url: str, headers: dict, body: dict) -> tuple[int, dict]:
        self.requests.append((url, headers, body))
        return self.status, self.payload


def make_mailer(transport: FakeTransport, api_key: str = "re_test") -> BudgetAlertMailer:
    return BudgetAlertMailer(
        api_key,
        "alerts@example.com",
        app_url="https://finance.example.com",
        transport=transport,
    )


def test_render_includes_name_message_and_links() -> None:
    html = render_budget_alert_email(
        "Asha",
        "⚠️ Monthly budget exceeded!",
        "Limit reset on the 1st",
        app_url="https://finance.example.com",
    )

    assert "Hi <strong>Asha</strong>" in html
    assert "⚠️ Monthly budget exceeded!" in html
    assert "Limit reset on the 1st" in html
    assert 'href="https://finance.example.com/budget"' in html


def test_render_escapes_message_html() -> None:
    html = render_budget_alert_email(
        "<b>x</b>", '"Food & Dining" exceeded', app_url="https://x"
    )

    assert "<b>x</b>" not in html
    assert "&#34;Food &amp; Dining&#34;" in html


def test_send_alert_posts_to_resend() -> None:
    transport = FakeTransport()
    mailer = make_mailer(transport)

    result = mailer.send_alert(
        BudgetAlertEmailIn(email="asha@example.com", message="over budget")
    )

    assert result == {"sent": True, "id": "email_123"}
    url, headers, body = transport.requests[0]
    assert url == RESEND_URL
    assert headers["Authorization"] == "Bearer re_test"
    assert body["to"] == ["asha@example.com"]
    assert body["from"] == "FinanceOS <alerts@example.com>"
    assert "Hi <strong>asha</strong>" in body["html"]
    assert body["subject"] == SUBJECT == "⚠️ Budget Limit Exceeded — FinanceOS Alert"
    assert "FinanceOS — Your personal finance assistant" in body["html"]


def test_send_alert_requires_email() -> None:
    mailer = make_mailer(FakeTransport())

    with pytest.raises(ValueError):
        mailer.send_alert(BudgetAlertEmailIn(message="over budget"))


def test_send_alert_without_api_key_skips() -> None:
    transport = FakeTransport()
    mailer = make_mailer(transport, api_key="")

    result = mailer.send_alert(
        BudgetAlertEmailIn(email="asha@example.com", message="over budget")
    )

    assert result == {"sent": False, "reason": "no_api_key"}
    assert transport.requests == []


def test_send_alert_reports_provider_error() -> None:
    transport = FakeTransport(status=422, payload={"message": "invalid from"})
    mailer = make_mailer(transport)

    result = mailer.send_alert(
        BudgetAlertEmailIn(email="asha@example.com", message="over budget")
    )

    assert result == {"sent": False, "error": {"message": "invalid from"}}


def test_payload_aliases_match_function_body() -> None:
    data = BudgetAlertEmailIn.model_validate(
        {"email": "a@b.c", "displayName": "A", "message": "m", "budgetInfo": "i"}
    )

    assert data.display_name == "A"
    assert data.budget_info == "i"


def test_dispatcher_returns_future_with_result() -> None:
    transport = FakeTransport()
    dispatcher = EmailDispatcher(mailer_sender(make_mailer(transport)))

    future = dispatcher.dispatch("asha@example.com", "Asha", "over budget")

    assert future.result(timeout=5) == {"sent": True, "id": "email_123"}
    dispatcher.shutdown(wait=True)
    assert "Hi <strong>Asha</strong>" in transport.requests[0][2]["html"]


def test_dispatcher_logs_failures_without_raising(caplog) -> None:
    def failing_send(payload: dict) -> dict:
        raise RuntimeError("smtp down")

    dispatcher = EmailDispatcher(failing_send)

    with caplog.at_level(logging.WARNING):
        future = dispatcher.dispatch("asha@example.com", "Asha", "over budget")
        dispatcher.shutdown(wait=True)

    assert isinstance(future.exception(), RuntimeError)
    assert "budget_alert_email: dispatch failed" in caplog.text


def test_function_sender_presents_shared_secret() -> None:
    transport = FakeTransport(payload={"sent": True, "id": "email_9"})
    send = function_sender(
        "https://fn.example.com/send-budget-alert",
        timeout=1,
        secret="s3cret",
        transport=transport,
    )

    assert send({"email": "asha@example.com", "message": "hi"}) == {
        "sent": True,
        "id": "email_9",
    }
    url, headers, body = transport.requests[0]
    assert url == "https://fn.example.com/send-budget-alert"
    assert headers == {FUNCTION_SECRET_HEADER: "s3cret"}
    assert body == {"email": "asha@example.com", "message": "hi"}


def test_function_sender_raises_on_error_status() -> None:
    transport = FakeTransport(status=401, payload={"detail": "Invalid function secret"})
    send = function_sender("https://fn.example.com", timeout=1, transport=transport)

    with pytest.raises(RuntimeError, match="401"):
        send({"email": "asha@example.com", "message": "hi"})
    assert transport.requests[0][1] == {}
