from __future__ import annotations

import json
import logging
import smtplib
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Callable

from app.blog.utils import strip_html, unescape_html

logger = logging.getLogger(__name__)


class EmailError(RuntimeError):
    pass


@dataclass(frozen=True)
class OutgoingEmail:
    to: tuple[str, ...]
    subject: str
    html: str
    text: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def plain_text(self) -> str:
        return self.text if self.text is not None else unescape_html(strip_html(self.html))


@dataclass(frozen=True)
class Sender:
    from_email: str
    from_name: str
    reply_to: str = ""

    @property
    def formatted(self) -> str:
        return formataddr((self.from_name, self.from_email)) if self.from_name else self.from_email


@dataclass
class SendReport:
    success_count: int = 0
    failed_count: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count

    @property
    def success(self) -> bool:
        return self.failed_count == 0


class EmailBackend:
    """Delivers one message (possibly to several recipients). Raises EmailError on failure."""

    name = "base"

    def send(self, message: OutgoingEmail, sender: Sender) -> str | None:
        raise NotImplementedError

    def send_batch(self, messages: list[OutgoingEmail], sender: Sender) -> list[str | None]:
        """Delivers several messages in one go; any failure fails the whole batch."""
        return [self.send(m, sender) for m in messages]

    def verify(self) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class ResendEmailBackend(EmailBackend):
    api_key: str
    base_url: str = "https://api.resend.com"
    timeout_seconds: int = 30
    name = "resend"

    def request_json(self, path: str, *, method: str = "GET", payload: dict | list | None = None) -> dict:
        url = self.base_url.rstrip("/") + path
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Authorization", f"Bearer {self.api_key}")
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                body = ""
            raise EmailError(f"HTTP {e.code} from Resend: {body[:300]}") from e
        except urllib.error.URLError as e:
            raise EmailError(f"Resend unreachable: {e.reason}") from e
        if not raw:
            return {}
        try:
            j = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise EmailError(f"Invalid JSON from Resend ({path})") from e
        return j if isinstance(j, dict) else {}

    def _payload(self, message: OutgoingEmail, sender: Sender) -> dict[str, object]:
        payload: dict[str, object] = {
            "from": sender.formatted,
            "to": list(message.to),
            "subject": message.subject,
            "html": message.html,
            "text": message.plain_text,
        }
        if sender.reply_to:
            payload["reply_to"] = sender.reply_to
        if message.headers:
            payload["headers"] = dict(message.headers)
        return payload

    def send(self, message: OutgoingEmail, sender: Sender) -> str | None:
        if not self.api_key:
            raise EmailError("RESEND_API_KEY is not configured")
        j = self.request_json("/emails", method="POST", payload=self._payload(message, sender))
        return j.get("id")

    def send_batch(self, messages: list[OutgoingEmail], sender: Sender) -> list[str | None]:
        if not self.api_key:
            raise EmailError("RESEND_API_KEY is not configured")
        if not messages:
            return []
        # /emails/batch takes up to 100 independent messages per call.
        j = self.request_json("/emails/batch", method="POST", payload=[self._payload(m, sender) for m in messages])
        data = j.get("data") or []
        ids = [d.get("id") if isinstance(d, dict) else None for d in data]
        return ids + [None] * (len(messages) - len(ids))

    def verify(self) -> None:
        if not self.api_key:
            raise EmailError("RESEND_API_KEY is not configured")
        self.request_json("/domains")


@dataclass(frozen=True)
class SmtpEmailBackend(EmailBackend):
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    use_ssl: bool = False  # implicit TLS (465); otherwise STARTTLS when offered
    timeout_seconds: int = 30
    name = "smtp"

    def _connect(self) -> smtplib.SMTP:
        if not self.host:
            raise EmailError("SMTP_HOST is not configured")
        try:
            if self.use_ssl:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    self.host, self.port, timeout=self.timeout_seconds, context=ssl.create_default_context()
                )
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds)
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
            if self.username:
                server.login(self.username, self.password)
        except smtplib.SMTPAuthenticationError as e:
            raise EmailError(f"SMTP authentication failed: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"SMTP connection failed: {e}") from e
        return server

    def _build(self, message: OutgoingEmail, sender: Sender, to: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = sender.formatted
        msg["To"] = to
        msg["Subject"] = message.subject
        if sender.reply_to:
            msg["Reply-To"] = sender.reply_to
        msg["Message-ID"] = make_msgid(domain=sender.from_email.partition("@")[2] or None)
        for k, v in message.headers.items():
            msg[k] = v
        msg.set_content(message.plain_text)
        msg.add_alternative(message.html, subtype="html")
        return msg

    def send(self, message: OutgoingEmail, sender: Sender) -> str | None:
        return self.send_batch([message], sender)[0]

    def send_batch(self, messages: list[OutgoingEmail], sender: Sender) -> list[str | None]:
        # One message per address on a shared connection; recipients never see each other.
        if not messages:
            return []
        server = self._connect()
        ids: list[str | None] = []
        try:
            for message in messages:
                msg_id = None
                for to in message.to:
                    msg = self._build(message, sender, to)
                    server.send_message(msg)
                    msg_id = msg["Message-ID"]
                ids.append(msg_id)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"SMTP send failed: {e}") from e
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                pass
        return ids

    def verify(self) -> None:
        server = self._connect()
        try:
            server.noop()
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                pass


class ConsoleEmailBackend(EmailBackend):
    """Development backend: logs instead of delivering."""

    name = "console"

    def send(self, message: OutgoingEmail, sender: Sender) -> str | None:
        logger.info("[email] from=%s to=%s subject=%s", sender.formatted, ",".join(message.to), message.subject)
        return None

    def verify(self) -> None:
        return None


def email_backend_from_config(config: dict) -> EmailBackend:
    backend = (config.get("EMAIL_BACKEND") or "console").strip().lower()
    if backend == "resend":
        return ResendEmailBackend(api_key=(config.get("RESEND_API_KEY") or "").strip())
    if backend == "smtp":
        return SmtpEmailBackend(
            host=(config.get("SMTP_HOST") or "").strip(),
            port=int(config.get("SMTP_PORT") or 587),
            username=(config.get("SMTP_USER") or "").strip(),
            password=config.get("SMTP_PASS") or "",
            use_ssl=bool(config.get("SMTP_SECURE")),
        )
    if backend != "console":
        logger.warning("Unknown EMAIL_BACKEND %r; falling back to console", backend)
    return ConsoleEmailBackend()


def unsubscribe_url(app_url: str, email: str | None = None) -> str:
    params = {"action": "unsubscribe"}
    if email:
        params = {"email": email, "action": "unsubscribe"}
    return f"{app_url.rstrip('/')}/api/subscribe?{urllib.parse.urlencode(params)}"


def unsubscribe_headers(app_url: str, email: str) -> dict[str, str]:
    return {
        "List-Unsubscribe": f"<{unsubscribe_url(app_url, email)}>",
        "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
    }


def personal_message(email: str, *, subject: str, render_html: Callable[[str], str], app_url: str) -> OutgoingEmail:
    """A copy addressed to one recipient, carrying that recipient's unsubscribe link and headers."""
    return OutgoingEmail(
        to=(email,),
        subject=subject,
        html=render_html(email),
        headers=unsubscribe_headers(app_url, email),
    )


def send_individually(
    backend: EmailBackend,
    sender: Sender,
    recipients: list[str],
    *,
    subject: str,
    render_html: Callable[[str], str],
    app_url: str,
    batch_size: int,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> SendReport:
    """
    One message per recipient so subscriber lists are never exposed.
    `render_html(email)` lets each copy carry its own unsubscribe link.
    """
    report = SendReport()
    batch_size = max(1, batch_size)
    for start in range(0, len(recipients), batch_size):
        for email in recipients[start:start + batch_size]:
            message = personal_message(email, subject=subject, render_html=render_html, app_url=app_url)
            try:
                backend.send(message, sender)
                report.success_count += 1
            except EmailError as e:
                logger.error("Failed to send email to %s: %s", email, e)
                report.failed_count += 1
                report.failures.append((email, str(e)))
        if delay_seconds and start + batch_size < len(recipients):
            sleep(delay_seconds)
    logger.info("Email sending complete: %s sent, %s failed", report.success_count, report.failed_count)
    return report


def send_in_batches(
    backend: EmailBackend,
    sender: Sender,
    recipients: list[str],
    *,
    subject: str,
    render_html: Callable[[str], str],
    app_url: str,
    batch_size: int,
    delay_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> SendReport:
    """
    One provider call per batch of personalised messages; a failed call counts every
    recipient in it as failed.
    """
    report = SendReport()
    batch_size = max(1, batch_size)
    for start in range(0, len(recipients), batch_size):
        batch = recipients[start:start + batch_size]
        messages = [
            personal_message(email, subject=subject, render_html=render_html, app_url=app_url) for email in batch
        ]
        try:
            backend.send_batch(messages, sender)
            report.success_count += len(batch)
        except EmailError as e:
            logger.error("Error sending email batch (%s recipients): %s", len(batch), e)
            report.failed_count += len(batch)
            report.failures.extend((addr, str(e)) for addr in batch)
        if delay_seconds and start + batch_size < len(recipients):
            sleep(delay_seconds)
    return report
