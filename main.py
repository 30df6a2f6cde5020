import hmac
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from alerts import FireEvent
from config import get_settings
from database import SessionLocal
from email_alerts import FUNCTION_SECRET_HEADER, BudgetAlertMailer, build_dispatcher
from periods import Month, resolve_month
from schemas import (
    BudgetAlertEmailIn,
    BudgetIn,
    ExpenseIn,
    ExpenseOut,
    NotificationOut,
    ProfileIn,
    ProfileOut,
    SessionIn,
    SnapshotOut,
)
from services import (
    AmbiguousCategory,
    BudgetService,
    ExpenseService,
    ProfileService,
    SnapshotService,
    UnknownCategory,
)
from sessions import SESSION_COOKIE, AlertSession, InvalidSession, SessionRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="FinanceOS")

dispatcher = build_dispatcher()
registry = SessionRegistry(dispatcher=dispatcher, session_factory=SessionLocal)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_registry() -> SessionRegistry:
    return registry


def get_mailer() -> BudgetAlertMailer:
    return BudgetAlertMailer()


def get_function_secret() -> Optional[str]:
    return get_settings().alert_function_secret


def get_email_login_enabled() -> bool:
    return get_settings().email_login_enabled


@app.on_event("shutdown")
def shutdown_event():
    dispatcher.shutdown(wait=False)


def current_session(
    request: Request, sessions: SessionRegistry = Depends(get_registry)
) -> AlertSession:
    token = request.cookies.get(SESSION_COOKIE)
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        return sessions.resolve(token)
    except InvalidSession as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def function_caller(
    request: Request,
    sessions: SessionRegistry = Depends(get_registry),
    secret: Optional[str] = Depends(get_function_secret),
) -> None:
    """Admits the app's own dispatcher (shared secret) or a signed-in user."""
    presented = request.headers.get(FUNCTION_SECRET_HEADER)
    if presented is not None:
        if secret and hmac.compare_digest(presented.encode(), secret.encode()):
            return
        raise HTTPException(status_code=401, detail="Invalid function secret")
    current_session(request, sessions)


def month_from_request(request: Request) -> Month:
    try:
        return resolve_month(request.query_params.get("month"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def run_budget_alerts(db: Session, alert_session: AlertSession) -> list[dict]:
    snapshot = SnapshotService(db, alert_session.user_id).snapshot_for_month(
        resolve_month(None)
    )
    events = alert_session.evaluator.evaluate(snapshot)
    return [_event_payload(event) for event in events]


def _event_payload(event: FireEvent) -> dict:
    return {"key": event.key, "type": event.type.value, "message": event.message}


@app.post("/api/session")
def login(
    data: SessionIn,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionRegistry = Depends(get_registry),
    email_login_enabled: bool = Depends(get_email_login_enabled),
):
    if not email_login_enabled:
        raise HTTPException(status_code=403, detail="Email sign-in is disabled")
    try:
        profile = ProfileService(db).get_or_create(data.email)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    alert_session, token = sessions.open(profile.user_id)
    response.set_cookie(SESSION_COOKIE, token, httponly=True, samesite="lax")
    return {"user_id": alert_session.user_id, "token": token}


@app.delete("/api/session", status_code=204)
def logout(
    alert_session: AlertSession = Depends(current_session),
    sessions: SessionRegistry = Depends(get_registry),
):
    sessions.close(alert_session.session_id)
    response = Response(status_code=204)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/api/profile", response_model=ProfileOut)
def get_profile(
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    profile = ProfileService(db).get(alert_session.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.put("/api/profile", response_model=ProfileOut)
def update_profile(
    data: ProfileIn,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    try:
        return ProfileService(db).upsert(alert_session.user_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/expenses")
def list_expenses(
    request: Request,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    month = month_from_request(request)
    items = ExpenseService(db, alert_session.user_id).list_for_month(month)
    return {
        "month": month.slug,
        "items": [ExpenseOut.model_validate(item) for item in items],
    }


@app.post("/api/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    try:
        expense = ExpenseService(db, alert_session.user_id).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "expense": ExpenseOut.model_validate(expense),
        "alerts": run_budget_alerts(db, alert_session),
    }


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    service = ExpenseService(db, alert_session.user_id)
    try:
        expense = service.update(expense_id, data)
    except (UnknownCategory, AmbiguousCategory) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "expense": ExpenseOut.model_validate(expense),
        "alerts": run_budget_alerts(db, alert_session),
    }


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    try:
        ExpenseService(db, alert_session.user_id).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"alerts": run_budget_alerts(db, alert_session)}


@app.get("/api/budget")
def get_budget(
    request: Request,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    month = month_from_request(request)
    budget = BudgetService(db, alert_session.user_id).get_for_month(month)
    return {
        "month": month.slug,
        "monthly_limit_cents": budget.monthly_limit_cents if budget else 0,
        "category_limits": dict(budget.category_limits or {}) if budget else {},
    }


@app.put("/api/budget")
def save_budget(
    data: BudgetIn,
    request: Request,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    month = month_from_request(request)
    try:
        budget = BudgetService(db, alert_session.user_id).upsert(month, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "month": budget.month,
        "monthly_limit_cents": budget.monthly_limit_cents,
        "category_limits": dict(budget.category_limits or {}),
        "alerts": run_budget_alerts(db, alert_session),
    }


@app.get("/api/snapshot", response_model=SnapshotOut)
def get_snapshot(
    request: Request,
    alert_session: AlertSession = Depends(current_session),
    db: Session = Depends(get_db),
):
    month = month_from_request(request)
    snapshot = SnapshotService(db, alert_session.user_id).snapshot_for_month(month)
    return SnapshotOut(
        month=month.slug,
        total_spent=snapshot.total_spent,
        monthly_limit=snapshot.monthly_limit,
        category_spending=snapshot.category_spending,
        category_limits=snapshot.category_limits,
    )


@app.get("/api/notifications")
def list_notifications(
    refresh: bool = True,
    alert_session: AlertSession = Depends(current_session),
):
    feed = alert_session.feed
    if refresh:
        feed.refresh()
    return {
        "items": [NotificationOut.model_validate(item) for item in feed.items],
        "unread_count": feed.unread_count,
    }


@app.post("/api/notifications/mark-all-read")
def mark_all_notifications_read(
    alert_session: AlertSession = Depends(current_session),
):
    ok = alert_session.feed.mark_all_read()
    return {"ok": ok, "unread_count": alert_session.feed.unread_count}


@app.get("/api/toasts")
def drain_toasts(alert_session: AlertSession = Depends(current_session)):
    return {
        "items": [
            {"id": toast.id, "message": toast.message, "severity": toast.severity.value}
            for toast in alert_session.toasts.drain()
        ]
    }


@app.post("/functions/send-budget-alert", dependencies=[Depends(function_caller)])
def send_budget_alert(
    data: BudgetAlertEmailIn, mailer: BudgetAlertMailer = Depends(get_mailer)
):
    try:
        result = mailer.send_alert(data)
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except Exception as exc:
        logger.exception("send_budget_alert: unexpected failure")
        return JSONResponse(status_code=500, content={"error": str(exc)})
    status_code = 500 if result.get("error") is not None else 200
    return JSONResponse(status_code=status_code, content=result)


def main(port: Optional[int] = None):
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=port or 8000, reload=False)


if __name__ == "__main__":
    main()
