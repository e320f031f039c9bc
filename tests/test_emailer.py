from datetime import date, time
from types import SimpleNamespace
from unittest.mock import patch

from utils.emailer import send_booking_email


def test_booking_email_escapes_names_in_html():
    booking = SimpleNamespace(
        user=SimpleNamespace(full_name="<script>alert(1)</script>", email="ana@example.com"),
        room=SimpleNamespace(name="Sala <b>Azul</b>"),
        date=date(2030, 5, 6),
        start_time=time(10, 0),
        end_time=time(11, 0),
    )
    with patch("utils.emailer.send_email", return_value=(True, None)) as send:
        send_booking_email(booking)

    html = send.call_args.kwargs["html"]
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "Sala &lt;b&gt;Azul&lt;/b&gt;" in html
    # the plain-text part keeps the names as written
    assert "<script>alert(1)</script>" in send.call_args.args[2]
