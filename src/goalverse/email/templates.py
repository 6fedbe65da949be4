"""
Email templates for GOALVERSE coaching notifications.

All templates use inline CSS for maximum email client compatibility.
Branded with a deep navy theme and cyan (#00CFFF) accents.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape
from typing import Any

from goalverse.notifications.constants import (
    GOAL_COMPLETION,
    INACTIVITY_REMINDER,
    PROGRESS_CHECKIN,
    STREAK_CELEBRATION,
    WEEKLY_SUMMARY,
)

# Color constants
BG_DARK = "#0D1B2A"
BG_CARD = "#111F30"
CYAN = "#00CFFF"
GOLD = "#FFD60A"
TEXT_PRIMARY = "#FFFFFF"
TEXT_SECONDARY = "#9CA3AF"
BORDER = "#374151"

APP_NAME = "GOALVERSE"
STREAK_HEADING = "\U0001F389 Streak Milestone!"
GOAL_HEADING = "\U0001F3AF Goal Achieved!"


def extract_first_name(email: str | None) -> str:
    """'jane.doe@example.com' -> 'Jane'."""
    if not email:
        return "there"
    local = email.split("@", 1)[0]
    for sep in "._-":
        local = local.split(sep, 1)[0]
    return local[:1].upper() + local[1:] if local else "there"


def _base_layout(content: str, base_url: str) -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{APP_NAME}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_DARK}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_DARK};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 32px;">
                            <span style="font-size: 24px; font-weight: 700; color: {CYAN};">{APP_NAME}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 32px 28px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 32px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You are receiving this because notifications are on for your {APP_NAME} account.<br>
                                <a href="{base_url}/settings" style="color: {CYAN};">Manage notification preferences</a>
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    """Render a cyan CTA button."""
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 28px auto;">
    <tr>
        <td align="center" style="background-color: {CYAN}; border-radius: 8px;">
            <a href="{url}" target="_blank" style="display: inline-block; padding: 14px 32px; color: {BG_DARK}; font-size: 16px; font-weight: 600; text-decoration: none; border-radius: 8px;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def _heading(text: str) -> str:
    return f'<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">{text}</h1>'


def _paragraph(text: str) -> str:
    return f'<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 16px 0;">{text}</p>'


def _stat(label: str, value: Any) -> str:
    return (
        f'<td align="center" style="padding: 12px;">'
        f'<div style="color: {CYAN}; font-size: 28px; font-weight: 700;">{value}</div>'
        f'<div style="color: {TEXT_SECONDARY}; font-size: 13px;">{label}</div></td>'
    )


def weekly_motivation(completed_this_week: int, current_streak: int) -> str:
    if completed_this_week >= 3:
        return "You're absolutely crushing it this week! Your dedication is inspiring."
    if current_streak >= 7:
        return f"Your {current_streak}-day streak shows incredible consistency. Keep the momentum rolling!"
    if completed_this_week >= 1:
        return "Great progress this week! Every step forward counts."
    return "This week is a fresh start. Your goals are waiting for your attention."


def urgency(days_since_activity: int) -> tuple[str, str]:
    """(title, message) scaled to how long the user has been away."""
    if days_since_activity <= 2:
        return (
            "Keep the Momentum Going!",
            "You're doing great with your goals! A quick check-in will help maintain your progress streak.",
        )
    if days_since_activity <= 5:
        return (
            "Time for a Goal Check-In",
            "It's been a few days since we've seen you. Your goals are waiting for your attention!",
        )
    if days_since_activity <= 10:
        return (
            "Your Goals Miss You",
            "It's been over a week since your last goal session. "
            "Small consistent actions lead to big results, so let's get back on track!",
        )
    return (
        "Ready to Restart Your Journey?",
        "Life gets busy, but your dreams don't have to wait. "
        "It's never too late to refocus on what matters most to you.",
    )


def weekly_summary(first_name: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Weekly progress report (premium).

    Returns:
        (subject, html_body, text_body)
    """
    completed = int(payload.get("completed_this_week", 0))
    active = int(payload.get("active_goals_count", 0))
    streak = int(payload.get("current_streak", 0))
    motivation = weekly_motivation(completed, streak)
    url = f"{base_url}/dashboard"

    subject = f"Your Weekly {APP_NAME} Progress Report"
    content = f"""\
{_heading("Your Weekly Progress Report")}
{_paragraph(f"Hi {escape(first_name)},")}
<table role="presentation" width="100%" style="margin: 8px 0 16px 0;"><tr>
{_stat("Completed this week", completed)}{_stat("Active goals", active)}{_stat("Day streak", streak)}
</tr></table>
{_paragraph(motivation)}
{_button(url, "Open Your Dashboard")}"""
    text_body = (
        f"Hi {first_name},\n\n"
        f"Your weekly progress report:\n"
        f"  Completed this week: {completed}\n"
        f"  Active goals: {active}\n"
        f"  Day streak: {streak}\n\n"
        f"{motivation}\n\n"
        f"Open your dashboard: {url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _base_layout(content, base_url), text_body


def progress_checkin(first_name: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Check-in nudge after a few quiet days.

    Returns:
        (subject, html_body, text_body)
    """
    days = int(payload.get("days_since_activity", 0))
    active = int(payload.get("active_goals_count", 0))
    title, message = urgency(days)
    url = f"{base_url}/dashboard"

    subject = "Time for a Goal Check-In"
    warning = ""
    if days > 7:
        warning = _paragraph(
            f"It's been {days} days since your last goal session. Consistency is key to achieving your dreams!"
        )
    goals_line = f"{active} active goal{'s' if active != 1 else ''} in progress." if active else ""
    content = f"""\
{_heading(title)}
{_paragraph(f"Hi {escape(first_name)},")}
{_paragraph(message)}
{_paragraph(goals_line) if goals_line else ""}
{warning}
{_button(url, "Check In Now")}"""
    text_body = (
        f"Hi {first_name},\n\n"
        f"{title}\n\n{message}\n\n"
        + (f"{goals_line}\n\n" if goals_line else "")
        + f"Check in: {url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _base_layout(content, base_url), text_body


def streak_celebration(first_name: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Streak milestone celebration.

    Returns:
        (subject, html_body, text_body)
    """
    streak = int(payload.get("current_streak", 0))
    milestone = payload.get("milestone") or f"{streak} Days of Success!"
    achievements = [str(a) for a in payload.get("achievements") or []]
    url = f"{base_url}/dashboard"

    subject = f"\U0001F525 {streak}-Day Streak Achievement!"
    items = "".join(
        f'<li style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.8;">{escape(a)}</li>'
        for a in achievements
    )
    achievement_block = f'<ul style="margin: 0 0 16px 0; padding-left: 20px;">{items}</ul>' if items else ""
    streak_line = (
        f"You've kept your goals moving for "
        f"<strong style=\"color: {TEXT_PRIMARY};\">{streak} days</strong> in a row."
    )
    content = f"""\
{_heading(STREAK_HEADING)}
{_paragraph(f"Hi {escape(first_name)},")}
<p style="color: {GOLD}; font-size: 24px; font-weight: 700; text-align: center; margin: 16px 0;">{escape(milestone)}</p>
{_paragraph(streak_line)}
{achievement_block}
{_button(url, "Keep the Streak Alive")}"""
    achievement_lines = "".join(f"  - {a}\n" for a in achievements)
    text_body = (
        f"Hi {first_name},\n\n"
        f"{milestone}\n"
        f"You've kept your goals moving for {streak} days in a row.\n\n"
        f"{achievement_lines}\n"
        f"Keep going: {url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _base_layout(content, base_url), text_body


def goal_completion(first_name: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Goal completed celebration with next-goal suggestions.

    Returns:
        (subject, html_body, text_body)
    """
    title = str(payload.get("title") or "Your goal")
    category = str(payload.get("category") or "General")
    completion_time = str(payload.get("completion_time") or "")
    suggestions = payload.get("next_suggestions") or []
    url = f"{base_url}/dashboard"

    subject = "\U0001F3AF Goal Completed - Celebrate Your Win!"
    rows = "".join(
        f'<div style="margin: 0 0 12px 0;">'
        f'<div style="color: {GOLD}; font-size: 16px; font-weight: 600;">{i}. {escape(str(s.get("title", "")))}</div>'
        f'<div style="color: {TEXT_SECONDARY}; font-size: 14px;">{escape(str(s.get("description", "")))}</div></div>'
        for i, s in enumerate(suggestions, start=1)
    )
    content = f"""\
{_heading(GOAL_HEADING)}
{_paragraph(f"Hi {escape(first_name)},")}
<p style="color: {TEXT_PRIMARY}; font-size: 20px; font-weight: 700; margin: 0 0 4px 0;">{escape(title)}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 14px; margin: 0 0 20px 0;">Completed in {escape(completion_time)} &bull; {escape(category)}</p>
{_paragraph("Build on this momentum with these personalized suggestions:")}
{rows}
{_button(url, "Set Your Next Goal")}"""
    suggestion_lines = "".join(
        f"  {i}. {s.get('title', '')}: {s.get('description', '')}\n"
        for i, s in enumerate(suggestions, start=1)
    )
    text_body = (
        f"Hi {first_name},\n\n"
        f"Goal achieved: {title}\n"
        f"Completed in {completion_time} ({category})\n\n"
        f"What's next:\n{suggestion_lines}\n"
        f"Set your next goal: {url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _base_layout(content, base_url), text_body


def inactivity_reminder(first_name: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Reminder after a long absence.

    Returns:
        (subject, html_body, text_body)
    """
    days = int(payload.get("days_since_activity", 0))
    active = int(payload.get("active_goals_count", 0))
    title, message = urgency(days)
    url = f"{base_url}/dashboard"

    subject = "Your Goals Are Waiting For You"
    goals_line = (
        f"You have <strong style=\"color: {TEXT_PRIMARY};\">{active} active goal{'s' if active != 1 else ''}</strong> waiting."
        if active else "Start fresh with a new goal today."
    )
    content = f"""\
{_heading(title)}
{_paragraph(f"Hi {escape(first_name)},")}
{_paragraph(message)}
{_paragraph(goals_line)}
{_button(url, "Get Back On Track")}"""
    plain_goals = f"You have {active} active goal{'s' if active != 1 else ''} waiting." if active else (
        "Start fresh with a new goal today."
    )
    text_body = (
        f"Hi {first_name},\n\n"
        f"{title}\n\n{message}\n\n{plain_goals}\n\n"
        f"Get back on track: {url}\n\n"
        f"-- The {APP_NAME} Team"
    )
    return subject, _base_layout(content, base_url), text_body


_TEMPLATE_REGISTRY = {
    WEEKLY_SUMMARY: weekly_summary,
    PROGRESS_CHECKIN: progress_checkin,
    STREAK_CELEBRATION: streak_celebration,
    GOAL_COMPLETION: goal_completion,
    INACTIVITY_REMINDER: inactivity_reminder,
}


def render(type_: str, email: str, payload: dict[str, Any], base_url: str) -> tuple[str, str, str]:
    """
    Render the email for a notification type.

    Raises:
        ValueError: If the type has no template.
    """
    template_func = _TEMPLATE_REGISTRY.get(type_)
    if template_func is None:
        msg = f"Unknown template: {type_}"
        raise ValueError(msg)
    return template_func(extract_first_name(email), payload or {}, base_url.rstrip("/"))
