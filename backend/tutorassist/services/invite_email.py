"""Invite Email — renders and sends the "join my workspace" email for an invite token.

Invariants:
    - Only a redeemable invite (unused, unexpired) of the caller's workspace is sent
    - The link is {APP_URL}/invite/{token}
    - Every interpolated value in the HTML part is escaped
"""

import logging
from uuid import UUID

from jinja2 import Environment, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.clock import utcnow
from tutorassist.core.errors import BusinessRuleError
from tutorassist.infrastructure.mailer import Mailer
from tutorassist.models.user import User
from tutorassist.models.workspace import Workspace
from tutorassist.services import membership

logger = logging.getLogger(__name__)

_html = Environment(autoescape=select_autoescape(default_for_string=True))
_text = Environment(autoescape=False)

INVITE_HTML = _html.from_string("""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>You're invited to {{ workspace_name }}</title></head>
<body style="margin: 0; padding: 40px 20px; background-color: #f3f4f6; font-family: Arial, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 12px; padding: 40px;">
    <h1 style="margin: 0 0 24px; color: #1d4ed8;">You're Invited!</h1>
    <p>Hi {{ student_name }},</p>
    <p><strong>{{ tutor_name }}</strong> has invited you to join their tutoring workspace
       <strong>{{ workspace_name }}</strong>.</p>
    <p>You'll be able to:</p>
    <ul>
      <li>Complete assignments tailored to your learning needs</li>
      <li>Track your progress and see your improvement</li>
      <li>Practice with interactive questions and get instant feedback</li>
    </ul>
    <p style="text-align: center; margin: 32px 0;">
      <a href="{{ invite_url }}" style="background-color: #3b82f6; color: #ffffff; padding: 14px 40px;
         border-radius: 8px; text-decoration: none; font-weight: 600;">Accept Invitation</a>
    </p>
    <p style="color: #6b7280; font-size: 14px;">Or paste this link into your browser:<br>
       <a href="{{ invite_url }}">{{ invite_url }}</a></p>
    <p style="color: #9ca3af; font-size: 13px;">This invite expires on {{ expires_on }}.
       If you didn't expect it, you can ignore this email.</p>
  </div>
  <p style="text-align: center; color: #9ca3af; font-size: 13px;">&copy; {{ year }} TutorAssist</p>
</body>
</html>""")

INVITE_TEXT = _text.from_string("""Hi {{ student_name }},

{{ tutor_name }} has invited you to join their tutoring workspace {{ workspace_name }}.

Accept the invitation: {{ invite_url }}

This invite expires on {{ expires_on }}.""")


def render_invite(
    student_name: str, tutor_name: str, workspace_name: str, invite_url: str, expires_on: str,
) -> tuple[str, str, str]:
    """Returns (subject, html, text)."""
    values = {
        "student_name": student_name,
        "tutor_name": tutor_name,
        "workspace_name": workspace_name,
        "invite_url": invite_url,
        "expires_on": expires_on,
        "year": utcnow().year,
    }
    subject = f"{tutor_name} has invited you to join {workspace_name}"
    return subject, INVITE_HTML.render(**values), INVITE_TEXT.render(**values)


async def send_invite_email(
    db: AsyncSession,
    mailer: Mailer,
    workspace_id: UUID,
    tutor: User,
    token: str,
    email: str,
    student_name: str | None = None,
) -> None:
    invite = await membership.find_invite(db, token)
    if (
        invite is None
        or invite.workspace_id != workspace_id
        or invite.used_at is not None
        or membership.is_expired(invite)
    ):
        raise BusinessRuleError("Invalid or expired invite", "INVALID_INVITE")

    workspace = await db.get(Workspace, workspace_id)
    invite_url = f"{get_settings().app_url.rstrip('/')}/invite/{token}"
    subject, html, text = render_invite(
        student_name=student_name or "Student",
        tutor_name=tutor.full_name or "Your Tutor",
        workspace_name=workspace.name if workspace else "TutorAssist",
        invite_url=invite_url,
        expires_on=invite.expires_at.strftime("%d %B %Y"),
    )
    await mailer.send(email, subject, html, text)
    logger.info("Invite email sent", extra={"workspace_id": str(workspace_id)})
