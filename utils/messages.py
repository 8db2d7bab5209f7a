"""
Message formatting utilities for the housekeeping service.
Provides the email templates sent by the job and summary log lines.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from utils.errors import NotificationDispatchError
from utils.time import format_deadline_for_display

logger = logging.getLogger(__name__)

DEADLINE_CLOSED_EMAIL = "DeadlineClosedEmail"
DEADLINE_REMINDER_EMAIL = "DeadlineReminderEmail"


@dataclass
class OutgoingEmail:
    """A rendered email ready for a transport."""
    to: str
    subject: str
    text: str
    template: str
    preview: str = ""


class EmailTemplates:
    """Pre-defined email templates."""

    DEADLINE_CLOSED = {
        'subject': "Poll Closed: {title}",
        'preview': "Your poll has been automatically closed at the deadline.",
        'heading': "Poll Closed at Deadline",
        'body': (
            "Your poll {title} has been automatically closed because the deadline has passed. "
            "New votes are no longer being accepted, but existing votes remain visible.\n\n"
            "Deadline: {deadline}"
        ),
        'button': "View Poll",
    }

    DEADLINE_REMINDER = {
        'subject': "Reminder: Respond to {title}",
        'preview': "Don't forget to respond to {title}. The deadline is approaching.",
        'heading': "Reminder: Respond to Poll",
        'body': (
            "This is a reminder for {participantList} to respond to the poll {title}.\n\n"
            "Deadline: {deadline} ({timeRemaining} remaining)"
        ),
        'button': "Respond to Poll",
    }

    # Summary lines logged after each job step
    SUMMARY_TEMPLATES = {
        'delete-inactive-polls': "🗑️ Marked {markedDeleted} inactive poll(s) as deleted",
        'remove-deleted-polls': "🧹 Removed {polls} deleted poll(s)",
        'close-expired-polls': "🔒 Closed {closedCount} expired poll(s)",
        'send-deadline-reminders': "📝 Sent {remindersSent} reminder(s) across {pollsProcessed} poll(s)",
    }


def format_participant_list(names: List[str]) -> str:
    """Join participant names, defaulting to a generic salutation."""
    names = [name for name in names if name]
    return ", ".join(names) if names else "participant"


def _prepare_deadline_closed(props: Dict[str, Any]) -> Dict[str, Any]:
    deadline = props["deadline"]
    if isinstance(deadline, datetime):
        deadline = format_deadline_for_display(deadline, props.get("timeZone"))
    return {"title": props["title"], "deadline": deadline}


def _prepare_deadline_reminder(props: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": props["title"],
        "deadline": props["deadline"],
        "timeRemaining": props["timeRemaining"],
        "participantList": format_participant_list(props.get("participantNames", [])),
    }


_TEMPLATES = {
    DEADLINE_CLOSED_EMAIL: (EmailTemplates.DEADLINE_CLOSED, _prepare_deadline_closed),
    DEADLINE_REMINDER_EMAIL: (EmailTemplates.DEADLINE_REMINDER, _prepare_deadline_reminder),
}


def render_email(template_name: str, to: str, props: Dict[str, Any]) -> OutgoingEmail:
    """
    Render a named email template.

    Args:
        template_name: One of the registered template names
        to: Recipient address
        props: Template properties (must include pollUrl)

    Returns:
        OutgoingEmail ready for delivery

    Raises:
        NotificationDispatchError: unknown template, missing recipient or missing props
    """
    if not to:
        raise NotificationDispatchError(template_name, to, "recipient address is required")
    if template_name not in _TEMPLATES:
        raise NotificationDispatchError(template_name, to, "unknown template")

    template, prepare = _TEMPLATES[template_name]
    try:
        values = prepare(props)
        poll_url = props["pollUrl"]
        subject = template['subject'].format(**values)
        preview = template['preview'].format(**values)
        body = template['body'].format(**values)
    except (KeyError, IndexError, ValueError) as e:
        raise NotificationDispatchError(template_name, to, f"missing or invalid property {e}") from e

    text = f"{template['heading']}\n\n{body}\n\n{template['button']}: {poll_url}\n"
    return OutgoingEmail(to=to, subject=subject, text=text, template=template_name, preview=preview)


def format_step_summary(step_name: str, summary: Optional[Dict[str, Any]]) -> str:
    """
    Format a job step summary for logging.

    Args:
        step_name: Route name of the step
        summary: Summary dict returned by the step

    Returns:
        Formatted summary string
    """
    template = EmailTemplates.SUMMARY_TEMPLATES.get(step_name, f"{step_name}: {{summary}}")
    values = dict(summary or {})
    deleted = values.get("deleted")
    if isinstance(deleted, dict):
        values.update(deleted)
    try:
        return template.format(summary=summary, **values)
    except KeyError as e:
        logger.warning(f"Missing template variable {e} for summary {step_name}")
        return f"{step_name}: {summary}"
