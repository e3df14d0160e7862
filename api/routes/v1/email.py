"""
api/routes/v1/email.py -- SMTP diagnostics for administrators.

Routes:
  GET  /api/v1/email/test-connection  -- open and authenticate an SMTP session
  POST /api/v1/email/send-test        -- send a sample welcome email

Both are super_admin+ and both always answer 200: the outcome is in the
body's "success" field, mirroring EmailNotifier's never-raise contract.
"""

from fastapi import APIRouter, Depends, Request
from slowapi.util import get_remote_address

from api.models import EmailResultResponse, SendTestEmailRequest
from audit.store import ActivityStore
from auth.dependencies import require_roles
from auth.models import User
from core.models import TOP_TIER_ROLES
from notify.email import EmailNotifier

router = APIRouter()

_require_top_tier = require_roles(*TOP_TIER_ROLES)


@router.get("/email/test-connection", response_model=EmailResultResponse)
def test_connection(
    request: Request,
    current_user: User = Depends(_require_top_tier),
) -> EmailResultResponse:
    notifier: EmailNotifier = request.app.state.email_notifier
    activity: ActivityStore = request.app.state.activity_store

    result = notifier.verify_connection()
    activity.log(current_user.id, "EMAIL_SERVICE_TEST", {"result": result}, get_remote_address(request))
    return EmailResultResponse(**result)


@router.post("/email/send-test", response_model=EmailResultResponse)
def send_test_email(
    request: Request,
    body: SendTestEmailRequest,
    current_user: User = Depends(_require_top_tier),
) -> EmailResultResponse:
    notifier: EmailNotifier = request.app.state.email_notifier
    activity: ActivityStore = request.app.state.activity_store

    # Placeholder credentials; nothing real is ever mailed from this endpoint.
    result = notifier.send_welcome_email(body.email, "Test User", "TestPassword123")
    activity.log(
        current_user.id,
        "TEST_EMAIL_SENT",
        {"recipientEmail": body.email, "result": result},
        get_remote_address(request),
    )
    return EmailResultResponse(**result)
