import logging
import smtplib
import ssl
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def send_email(email_to, subject, body):
    """Send one HTML email. Returns True on success, False otherwise."""
    config = current_app.config
    if not config.get("EMAILS_ENABLED", True):
        logger.info("Emails disabled, skipping '%s' to %s", subject, email_to)
        return False

    sender = config.get("EMAIL_ADDRESS")
    if not sender:
        logger.warning("EMAIL_ADDRESS is not set, cannot send '%s' to %s", subject, email_to)
        return False

    em = EmailMessage()
    em["From"] = sender
    em["To"] = email_to
    em["Subject"] = subject
    em.set_content(body, subtype="html")

    try:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(config["SMTP_HOST"], config["SMTP_PORT"], context=context) as smtp:
            smtp.login(sender, config.get("EMAIL_PASSWORD", ""))
            smtp.sendmail(sender, email_to, em.as_string())
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email '%s' failed to %s: %s", subject, email_to, e)
        return False


def send_added_to_team_email(email_to, team_name, event_name, leader_name="Your team leader"):
    subject = f"You're part of team {team_name} for {event_name}!"
    body = f"""
    <html>
    <body style="background-color: #ffffff; color: #2ecc71; font-family: Arial, sans-serif; text-align: center;">
        <h1>Welcome aboard!</h1>
        <p>You've been added to team <strong>{team_name}</strong> by <strong>{leader_name}</strong>
           for <strong>{event_name}</strong>.</p>
        <p style="font-size: 18px;">Get ready to innovate!</p>
        <br><br>
        <footer style="color: gray; font-size: 12px;">This is an automated message from HackHub.</footer>
    </body>
    </html>
    """
    return send_email(email_to, subject, body)


def send_judge_invitation_email(email_to, judge_name, event_name, invited_by, dashboard_url):
    subject = f"You're invited to judge {event_name}"
    body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #4f46e5;">Judging invitation</h2>
        <p>Dear <strong>{judge_name}</strong>,</p>
        <p><strong>{invited_by}</strong> has invited you to evaluate submissions for
           <strong>{event_name}</strong>.</p>
        <p>
            <a href="{dashboard_url}"
               style="background: #4f46e5; color: white; padding: 12px 24px; text-decoration: none; border-radius: 20px;">
                Accept or decline the invitation
            </a>
        </p>
        <footer style="color: gray; font-size: 12px;">This is an automated message from HackHub.</footer>
    </body>
    </html>
    """
    return send_email(email_to, subject, body)


def _position_label(position):
    if position == 1:
        return "First Place Winner", "WINNER!"
    if position == 2:
        return "Second Place Winner", "RUNNER-UP!"
    if position == 3:
        return "Third Place Winner", "THIRD PLACE!"
    return f"Winner (#{position})", "WINNER!"


def _winners_table(winners):
    rows = "".join(
        f"<tr><td style=\"padding: 6px;\">#{w['position']}</td>"
        f"<td style=\"padding: 6px;\">{w['teamName']}</td>"
        f"<td style=\"padding: 6px;\">{w.get('projectTitle') or ''}</td>"
        f"<td style=\"padding: 6px;\">{'N/A' if w.get('combinedScore') is None else w['combinedScore']}</td></tr>"
        for w in winners
    )
    return f"""
        <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
            <tr style="background: #667eea; color: white;">
                <th style="padding: 6px;">Position</th><th style="padding: 6px;">Team</th>
                <th style="padding: 6px;">Project</th><th style="padding: 6px;">Score</th>
            </tr>
            {rows}
        </table>
    """


def send_winner_email(email_to, participant_name, event_name, winner, winners):
    """winner is the recipient's entry; winners is the full ordered list shown as a table."""
    achievement, subject_prefix = _position_label(winner["position"])
    subject = f"{subject_prefix} Results of {event_name}"
    team_name = winner["teamName"]
    project_title = winner.get("projectTitle") or ""
    combined_score = winner.get("combinedScore")
    score_text = "" if combined_score is None else f"<p>Final score: <strong>{combined_score}</strong></p>"
    body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; border-radius: 15px; text-align: center;">
            <h1 style="color: white; margin: 0;">Congratulations!</h1>
            <p style="color: white; margin: 10px 0 0 0;">{event_name} Results</p>
        </div>
        <p>Dear <strong>{participant_name}</strong>,</p>
        <p>Your team <strong>{team_name}</strong> won with <strong>{project_title}</strong>.</p>
        <div style="background: #f8f9fa; padding: 20px; border-left: 5px solid #27ae60;">
            <p style="margin: 0; color: #27ae60; font-weight: bold;">Your Achievement: {achievement}</p>
            {score_text}
        </div>
        <h3>All winners</h3>
        {_winners_table(winners)}
        <p style="color: #7f8c8d; font-size: 0.8rem;">
            This is an automated message sent when the organizers announced the winners.
        </p>
    </body>
    </html>
    """
    return send_email(email_to, subject, body)


def send_shortlisted_email(email_to, participant_name, event_name, team_name):
    subject = f"Your team has been shortlisted in {event_name}"
    body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #2980b9;">Great work, {participant_name}!</h2>
        <p>Team <strong>{team_name}</strong> made the shortlist of <strong>{event_name}</strong>.
           Thank you for your participation.</p>
        <footer style="color: gray; font-size: 12px;">This is an automated message from HackHub.</footer>
    </body>
    </html>
    """
    return send_email(email_to, subject, body)
