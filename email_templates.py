from html import escape
from typing import Optional, Sequence

from models import PublishedArtifact, Team


def passes_email_subject(event_name: str, brand_name: str) -> str:
    return f"Event Passes Ready - {event_name} | {brand_name}"


def _detail_row(label: str, value: str, mono: bool = False) -> str:
    font = " font-family: monospace;" if mono else ""
    return (
        '<tr><td style="padding: 12px 16px; border-bottom: 1px solid #e5e5e5;">'
        f'<span style="font-size: 12px; color: #666; text-transform: uppercase;">{escape(label)}</span>'
        f'<div style="font-size: 15px; color: #111; margin-top: 2px;{font}">{escape(value)}</div>'
        "</td></tr>"
    )


def render_passes_email(
    team: Team,
    artifacts: Sequence[PublishedArtifact],
    brand_name: str,
    support_email: Optional[str] = None,
    event_dates: Optional[str] = None,
) -> str:
    """HTML body sent to the captain: team details plus one link per pass."""
    rows = [
        _detail_row("Team ID", team.display_id, mono=True),
        _detail_row("Team", team.team_name),
        _detail_row("Event", team.event_name),
    ]
    if team.college_name:
        rows.append(_detail_row("College", team.college_name))
    if team.members:
        n = len(team.members)
        rows.append(_detail_row("Team Size", f"{n} member{'s' if n > 1 else ''}"))
    if team.transaction_id:
        rows.append(_detail_row("Transaction ID", team.transaction_id, mono=True))

    if artifacts:
        items = "".join(
            f"<li><strong>{escape(a.name)}'s Event Pass:</strong> "
            f'<a href="{escape(a.url, quote=True)}" style="color: #15803d;">Download</a></li>'
            for a in artifacts
        )
        passes = (
            '<div style="margin-top: 24px; padding: 16px; background-color: #f0fdf4; border: 1px solid #bbf7d0;">'
            '<p style="margin: 0 0 8px; font-size: 14px; color: #166534;">Event Passes:</p>'
            f'<ul style="margin: 0; padding-left: 20px; font-size: 14px;">{items}</ul></div>'
        )
    else:
        passes = '<p style="margin-top: 24px; font-size: 14px; color: #555;">No passes could be generated yet.</p>'

    checklist = [
        "Share passes with your team members",
        "Bring passes (print or digital) for check-in",
    ]
    if event_dates:
        checklist.append(f"Event date: {event_dates}")
    todo = "".join(f"<li>{escape(item)}</li>" for item in checklist)

    footer = ""
    if support_email:
        footer = (
            '<tr><td style="padding: 20px 32px; background-color: #fafafa; border-top: 1px solid #e5e5e5;">'
            f'Questions? <a href="mailto:{escape(support_email, quote=True)}">{escape(support_email)}</a>'
            "</td></tr>"
        )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="padding: 32px 16px;"><tr><td align="center">
    <table width="100%" cellpadding="0" cellspacing="0" style="max-width: 520px; background-color: #ffffff;">
      <tr><td style="padding: 32px 32px 24px; border-bottom: 1px solid #e5e5e5;">
        <h1 style="margin: 0 0 4px; font-size: 24px; color: #111;">Payment Verified</h1>
        <p style="margin: 0; font-size: 14px; color: #666;">{escape(brand_name)}</p>
      </td></tr>
      <tr><td style="padding: 24px 32px;">
        <p style="font-size: 15px; color: #333;">Hi {escape(team.notification_name)}, your payment has been verified.</p>
        <p style="font-size: 15px; color: #333;">Your team is now registered for <strong>{escape(team.event_name)}</strong>.</p>
        <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #fafafa; border: 1px solid #e5e5e5;">
          {''.join(rows)}
        </table>
        {passes}
        <p style="margin: 24px 0 12px; font-size: 14px; color: #333;">Before the event:</p>
        <ul style="margin: 0; padding-left: 20px; font-size: 14px; color: #555;">{todo}</ul>
      </td></tr>
      {footer}
    </table>
  </td></tr></table>
</body>
</html>
"""
