import smtplib
from email.message import EmailMessage

from flask import current_app
from markupsafe import escape

from utils.logger import logger


def send_email(to_email: str, subject: str, body: str, html: str = None):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = f"SATI Reservations <{from_email}>"
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Email to {} failed: {}", to_email, exc)
        return False, str(exc)


def send_booking_email(booking):
    """Confirmation sent to the therapist who owns the booking."""
    user = booking.user
    room = booking.room
    date = booking.date.isoformat()
    start = booking.start_time.strftime("%H:%M")
    end = booking.end_time.strftime("%H:%M")

    body = (
        f"Hello {user.full_name},\n\n"
        "A new session has been booked. Details:\n\n"
        f"Date: {date}\n"
        f"Time: {start} - {end}\n"
        f"Room: {room.name}\n\n"
        "Please review the information and prepare what you need for the session.\n\n"
        "SATI"
    )
    html = (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: auto;\">"
        "<h2>New booking registered</h2>"
        f"<p>Hello {escape(user.full_name)},</p>"
        "<table style=\"width: 100%; border-collapse: collapse;\">"
        f"<tr><td><b>Date:</b></td><td>{date}</td></tr>"
        f"<tr><td><b>Time:</b></td><td>{start} - {end}</td></tr>"
        f"<tr><td><b>Room:</b></td><td>{escape(room.name)}</td></tr>"
        "</table></div>"
    )
    return send_email(user.email, "New booking registered", body, html=html)
