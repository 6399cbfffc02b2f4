"""Invitation and notice rendering.

Each email is built from a typed context record; a missing field fails at
construction time instead of leaving a placeholder in the sent text.
"""
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from telehealth import config
from telehealth.availability import format_time_12h
from telehealth.links import build_cancel_link, build_join_link, build_short_link
from telehealth.models import Meeting

JOIN_INSTRUCTIONS = [
    "Click the consultation link 5-10 minutes before your appointment time",
    "Make sure you have a stable internet connection",
    "Use Chrome, Firefox, Safari, or Edge browser for best experience",
    "Allow camera and microphone permissions when prompted",
    "Have your ID and insurance information ready if needed",
    "Ensure you're in a quiet, private location for the consultation",
]


def format_meeting_time(value: datetime, timezone_name: str = config.OPERATING_HOURS["timezone"]) -> str:
    """e.g. 'Monday, March 03, 2025 at 10:00 AM UTC'"""
    local = value.astimezone(ZoneInfo(timezone_name))
    return f"{local.strftime('%A, %B %d, %Y')} at {format_time_12h(local)} {local.tzname()}"


class RenderedEmail(BaseModel):
    subject: str
    body: str


class InvitationContext(BaseModel):
    """Everything an invitation email shows."""
    patient_name: str = Field(..., min_length=1)
    doctor_name: str = Field(..., min_length=1)
    consultation_date: str
    duration: str
    consultation_type: str
    consultation_link: str
    short_link: str
    cancel_link: str
    meeting_id: str
    instructions: List[str] = Field(default_factory=lambda: list(JOIN_INSTRUCTIONS))
    notes: Optional[str] = None
    support_contact: str = config.SUPPORT_EMAIL
    company_name: str = config.COMPANY_NAME
    current_year: int

    @classmethod
    def from_meeting(cls, meeting: Meeting, now: datetime, base_url: Optional[str] = None):
        return cls(
            patient_name=meeting.patient_name,
            doctor_name=meeting.doctor_name,
            consultation_date=format_meeting_time(meeting.scheduled_time),
            duration=f"{meeting.duration_minutes} minutes",
            consultation_type=meeting.consultation_type.label,
            consultation_link=build_join_link(meeting, base_url),
            short_link=build_short_link(meeting, base_url),
            cancel_link=build_cancel_link(meeting, base_url),
            meeting_id=meeting.id,
            notes=meeting.notes,
            current_year=now.year,
        )


class CancellationContext(BaseModel):
    patient_name: str
    doctor_name: str
    consultation_date: str
    reason: Optional[str] = None
    support_contact: str = config.SUPPORT_EMAIL
    company_name: str = config.COMPANY_NAME


def _footer(company_name: str, year: Optional[int] = None) -> str:
    lines = []
    if year is not None:
        lines.append(f"(c) {year} {company_name}. All rights reserved.")
    lines.append("This is an automated message. Please do not reply to this email.")
    return "\n".join(lines)


def render_invitation(ctx: InvitationContext, resend: bool = False) -> RenderedEmail:
    """
    Render an invitation (or a resend reminder) as plain text.

    Args:
        ctx: Invitation data
        resend: Use the reminder subject line

    Returns:
        Subject and body
    """
    if resend:
        subject = f"Reminder: Video Consultation with {ctx.doctor_name}"
    else:
        subject = f"Video Consultation Invitation - {ctx.consultation_date}"

    instructions = "\n".join(f"  {i}. {text}" for i, text in enumerate(ctx.instructions, 1))

    body = (
        f"Dear {ctx.patient_name},\n\n"
        f"You have been invited to a video consultation with {ctx.doctor_name}.\n\n"
        f"Consultation details:\n"
        f"- Date & time: {ctx.consultation_date}\n"
        f"- Duration: {ctx.duration}\n"
        f"- Type: {ctx.consultation_type}\n"
        f"- Meeting ID: {ctx.meeting_id}\n\n"
        f"Join your consultation:\n{ctx.consultation_link}\n\n"
        f"Short link: {ctx.short_link}\n\n"
        f"Before you join:\n{instructions}\n\n"
        f"Need to cancel? Use this link:\n{ctx.cancel_link}\n\n"
    )
    if ctx.notes:
        body += f"Notes from your provider:\n{ctx.notes}\n\n"
    body += (
        f"If you have any questions or need to reschedule, please contact us at "
        f"{ctx.support_contact}\n\n"
        f"{_footer(ctx.company_name, ctx.current_year)}\n"
    )
    return RenderedEmail(subject=subject, body=body)


def render_cancellation(ctx: CancellationContext) -> RenderedEmail:
    subject = f"Consultation Cancelled - {ctx.doctor_name}"
    body = (
        f"Dear {ctx.patient_name},\n\n"
        f"Your video consultation with {ctx.doctor_name} on {ctx.consultation_date} "
        f"has been cancelled.\n"
    )
    if ctx.reason:
        body += f"\nReason: {ctx.reason}\n"
    body += (
        f"\nTo book a new time, please contact us at {ctx.support_contact}\n\n"
        f"{_footer(ctx.company_name)}\n"
    )
    return RenderedEmail(subject=subject, body=body)
