from app.blog.mailer import (
    ConsoleEmailBackend,
    EmailBackend,
    EmailError,
    OutgoingEmail,
    ResendEmailBackend,
    Sender,
    SmtpEmailBackend,
    email_backend_from_config,
    send_in_batches,
    send_individually,
    unsubscribe_headers,
    unsubscribe_url,
)
from app.blog.utils import calculate_reading_time, create_slug, format_category, parse_bool, parse_int

SENDER = Sender(from_email="noreply@blog.test", from_name="Blog")


class RecordingBackend(EmailBackend):
    name = "recording"

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, message, sender):
        if self.fail_for & set(message.to):
            raise EmailError("rejected")
        self.sent.append(message)
        return None


def test_send_individually_one_message_per_recipient():
    backend = RecordingBackend(fail_for={"b@x.com"})
    sleeps = []
    report = send_individually(
        backend,
        SENDER,
        ["a@x.com", "b@x.com", "c@x.com"],
        subject="Hello",
        render_html=lambda email: f"<p>Hi {email}</p>",
        app_url="http://blog.test",
        batch_size=2,
        delay_seconds=1.5,
        sleep=sleeps.append,
    )
    assert report.success_count == 2
    assert report.failed_count == 1
    assert report.failures[0][0] == "b@x.com"
    assert [m.to for m in backend.sent] == [("a@x.com",), ("c@x.com",)]
    assert backend.sent[1].html == "<p>Hi c@x.com</p>"
    assert sleeps == [1.5]


def test_send_in_batches_fails_whole_batch():
    backend = RecordingBackend(fail_for={"c@x.com"})
    sleeps = []
    report = send_in_batches(
        backend,
        SENDER,
        ["a@x.com", "b@x.com", "c@x.com", "d@x.com", "e@x.com"],
        subject="Digest",
        render_html=lambda email: f"<p>News for {email}</p>",
        app_url="http://blog.test",
        batch_size=2,
        delay_seconds=1.0,
        sleep=sleeps.append,
    )
    assert report.success_count == 3
    assert report.failed_count == 2
    assert [m.to for m in backend.sent] == [("a@x.com",), ("b@x.com",), ("e@x.com",)]
    assert backend.sent[2].html == "<p>News for e@x.com</p>"
    assert backend.sent[2].headers["List-Unsubscribe"] == "<http://blog.test/api/subscribe?email=e%40x.com&action=unsubscribe>"
    assert sleeps == [1.0, 1.0]


def test_no_delay_after_last_batch():
    sleeps = []
    send_in_batches(
        RecordingBackend(),
        SENDER,
        ["a@x.com"],
        subject="s",
        render_html=lambda email: "h",
        app_url="http://blog.test",
        batch_size=10,
        delay_seconds=2.0,
        sleep=sleeps.append,
    )
    assert sleeps == []


def test_resend_batch_posts_one_payload_per_recipient(monkeypatch):
    calls = []

    def fake_request_json(self, path, *, method="GET", payload=None):
        calls.append((path, method, payload))
        return {"data": [{"id": "em_1"}, {"id": "em_2"}]}

    monkeypatch.setattr(ResendEmailBackend, "request_json", fake_request_json)
    report = send_in_batches(
        ResendEmailBackend(api_key="re_x"),
        SENDER,
        ["a@x.com", "b@x.com"],
        subject="Digest",
        render_html=lambda email: f"<p>Bye {email}</p>",
        app_url="http://blog.test",
        batch_size=50,
    )
    assert report.success_count == 2
    assert len(calls) == 1
    path, method, payload = calls[0]
    assert (path, method) == ("/emails/batch", "POST")
    assert [p["to"] for p in payload] == [["a@x.com"], ["b@x.com"]]
    assert payload[1]["html"] == "<p>Bye b@x.com</p>"
    assert payload[1]["headers"]["List-Unsubscribe-Post"] == "List-Unsubscribe=One-Click"


def test_plain_text_unescapes_entities():
    message = OutgoingEmail(to=("a@x.com",), subject="s", html="<p>Tom &amp; Jerry&nbsp;&lt;3</p>")
    assert message.plain_text == "Tom & Jerry <3"


def test_unsubscribe_links():
    assert unsubscribe_url("http://blog.test/") == "http://blog.test/api/subscribe?action=unsubscribe"
    assert (
        unsubscribe_url("http://blog.test", "a+b@x.com")
        == "http://blog.test/api/subscribe?email=a%2Bb%40x.com&action=unsubscribe"
    )
    headers = unsubscribe_headers("http://blog.test", "a@x.com")
    assert headers["List-Unsubscribe"] == "<http://blog.test/api/subscribe?email=a%40x.com&action=unsubscribe>"
    assert headers["List-Unsubscribe-Post"] == "List-Unsubscribe=One-Click"


def test_sender_formatting():
    assert SENDER.formatted == "Blog <noreply@blog.test>"
    assert Sender(from_email="x@blog.test", from_name="").formatted == "x@blog.test"


def test_backend_from_config():
    assert isinstance(email_backend_from_config({}), ConsoleEmailBackend)
    assert isinstance(email_backend_from_config({"EMAIL_BACKEND": "resend", "RESEND_API_KEY": "re_x"}), ResendEmailBackend)
    smtp = email_backend_from_config({"EMAIL_BACKEND": "smtp", "SMTP_HOST": "smtp.x.com", "SMTP_PORT": 465, "SMTP_SECURE": True})
    assert isinstance(smtp, SmtpEmailBackend)
    assert smtp.port == 465
    assert smtp.use_ssl is True
    assert isinstance(email_backend_from_config({"EMAIL_BACKEND": "carrier-pigeon"}), ConsoleEmailBackend)


def test_unconfigured_backends_raise():
    try:
        ResendEmailBackend(api_key="").verify()
    except EmailError as e:
        assert "RESEND_API_KEY" in str(e)
    else:
        raise AssertionError("expected EmailError")

    try:
        SmtpEmailBackend(host="").verify()
    except EmailError as e:
        assert "SMTP_HOST" in str(e)
    else:
        raise AssertionError("expected EmailError")


# ---------- Text helpers ----------
def test_create_slug():
    assert create_slug("Hello, World!") == "hello-world"
    assert create_slug("  Café   au lait  ") == "cafe-au-lait"
    assert create_slug("React & Next.js -- Tips") == "react-nextjs-tips"


def test_reading_time_and_category_labels():
    assert calculate_reading_time("") == 1
    assert calculate_reading_time("<p>" + "word " * 401 + "</p>") == 3
    assert format_category("nextjs") == "Next.js"
    assert format_category("game-design") == "Game Design"


def test_parse_helpers():
    assert parse_bool("TRUE") is True
    assert parse_bool("off") is False
    assert parse_bool(None) is None
    assert parse_bool("maybe") is None
    assert parse_int("5", 1) == 5
    assert parse_int("abc", 1) == 1
    assert parse_int("0", 1) == 1
    assert parse_int("500", 10, maximum=100) == 100
