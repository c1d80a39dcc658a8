import html as html_lib
import os
from typing import Tuple

from time_utils import format_event_datetime

SIGNATURE = os.environ.get("EMAIL_FROM_NAME", "CSI TKMCE")


def _detail_rows(notice) -> list:
    rows = [
        ("Event", notice.event_name),
        ("Participation", "Team" if notice.event_type == "team" else "Solo"),
        ("Venue", notice.venue or "To be announced"),
        ("Starts", format_event_datetime(notice.event_start_time)),
    ]
    if notice.team_name:
        rows.append(("Team", notice.team_name))
    if notice.team_code:
        rows.append(("Team code", notice.team_code))
    if notice.accommodation:
        rows.append(("Accommodation", notice.accommodation))
    if notice.food_preference:
        rows.append(("Food preference", notice.food_preference))
    if notice.amount_paid:
        rows.append(("Amount paid", f"INR {notice.amount_paid:.2f}"))
    return rows


def build_registration_confirmation_email(notice) -> Tuple[str, str, str]:
    subject = f"You're In! Registration Confirmed - {notice.event_name}"
    rows = _detail_rows(notice)
    team_hint = ""
    if notice.team_code and notice.is_team_lead:
        team_hint = f"Share the team code {notice.team_code} with your teammates so they can join."

    text_lines = [
        f"Hello {notice.name},",
        "",
        f"Great news! Your registration is confirmed for {notice.event_name}.",
        "",
    ]
    text_lines.extend(f"{label}: {value}" for label, value in rows)
    if team_hint:
        text_lines.extend(["", team_hint])
    if notice.whatsapp_link:
        text_lines.extend(["", f"Join our WhatsApp group for updates: {notice.whatsapp_link}"])
    text_lines.extend(["", "See you at the event!", "", "Regards,", SIGNATURE])
    text = "\n".join(text_lines) + "\n"

    esc = html_lib.escape
    rows_html = "".join(
        f'<tr><td style="padding:4px 12px 4px 0;color:#555;">{esc(label)}</td>'
        f"<td style=\"padding:4px 0;\"><strong>{esc(str(value))}</strong></td></tr>"
        for label, value in rows
    )
    hint_html = f"<p>{esc(team_hint)}</p>" if team_hint else ""
    whatsapp_html = (
        f'<p><a href="{esc(notice.whatsapp_link)}" target="_blank" rel="noreferrer">Join our WhatsApp group for updates</a></p>'
        if notice.whatsapp_link
        else ""
    )
    html = f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 560px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          <h2 style="margin-top: 0;">Registration confirmed</h2>
          <p>Hello {esc(notice.name)},</p>
          <p><strong>Great news!</strong> Your registration is confirmed for <strong>{esc(notice.event_name)}</strong>.</p>
          <table style="border-collapse: collapse; margin: 16px 0;">{rows_html}</table>
          {hint_html}
          {whatsapp_html}
          <p>See you at the event!</p>
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          <p style="margin-bottom: 0;">Regards,<br><strong>{esc(SIGNATURE)}</strong></p>
        </div>
      </body>
    </html>
    """
    return subject, html, text
