"""Email notification via SMTP."""

import html
import logging
import re
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from webtracker.config import Settings
from webtracker.models import ChangeType, NotificationEvent
from webtracker.notifiers.base import Notifier, NotifyResult, change_icon
from webtracker.trackers.base import ConfigField

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CHANGE_COLORS = {
    ChangeType.DECREASED: "#28a745",
    ChangeType.INCREASED: "#dc3545",
}


@dataclass
class SmtpConfig:
    host: str
    port: int
    secure: bool
    user: str
    password: str
    sender: str
    to: list[str]


class EmailNotifier(Notifier):
    """
    Send change alerts by email.

    Per-product config keys: host, port, secure, user, pass, from, to.
    Missing keys fall back to the SMTP_* settings; ``to`` defaults to the
    SMTP user.
    """

    kind = "email"
    name = "Email Notifier"
    description = "Send notifications via email using SMTP"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self.smtp: SmtpConfig | None = None

    def initialize(self, config: dict) -> NotifyResult:
        config = config or {}
        s = self.settings
        host = config.get("host") or s.smtp_host
        user = config.get("user") or s.smtp_user
        password = config.get("pass") or s.smtp_pass
        if not host or not user or not password:
            self.smtp = None
            return NotifyResult.fail("Email configuration is incomplete: SMTP host, user and password are required")

        try:
            port = int(config.get("port") or s.smtp_port)
        except (TypeError, ValueError):
            self.smtp = None
            return NotifyResult.fail(f"Invalid SMTP port: {config.get('port')!r}")

        to = config.get("to") or user
        if isinstance(to, str):
            recipients = [addr.strip() for addr in to.split(",")]
        elif isinstance(to, (list, tuple)) and all(isinstance(addr, str) for addr in to):
            recipients = [addr.strip() for addr in to]
        else:
            self.smtp = None
            return NotifyResult.fail(f"Invalid email recipients: {to!r}")
        self.smtp = SmtpConfig(
            host=host,
            port=port,
            secure=bool(config.get("secure", s.smtp_secure)),
            user=user,
            password=password,
            sender=config.get("from") or s.smtp_from or user,
            to=[r for r in recipients if r],
        )
        logger.debug("Email: initialized for %s:%d", host, port)
        return NotifyResult.ok()

    def notify(self, event: NotificationEvent) -> NotifyResult:
        if self.smtp is None:
            return NotifyResult.fail("Email notifier not initialized")
        smtp = self.smtp

        message_id = make_msgid()
        msg = MIMEMultipart("alternative")
        msg["From"] = smtp.sender
        msg["To"] = ", ".join(smtp.to)
        msg["Subject"] = build_subject(event)
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(build_text(event), "plain", "utf-8"))
        msg.attach(MIMEText(build_html(event), "html", "utf-8"))

        try:
            logger.debug("Email: sending alert to %s", msg["To"])
            if smtp.secure:
                server = smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=30)
            else:
                server = smtplib.SMTP(smtp.host, smtp.port, timeout=30)
            with server:
                if not smtp.secure:
                    server.starttls()
                server.login(smtp.user, smtp.password)
                server.sendmail(smtp.sender, smtp.to, msg.as_string())
            logger.info("Email: alert sent for %s", event.product_name)
            return NotifyResult.ok(message_id)
        except smtplib.SMTPAuthenticationError as e:
            logger.error("Email authentication failed: %s", e)
            return NotifyResult.fail(f"SMTP authentication failed: {e}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email SMTP error: %s", e)
            return NotifyResult.fail(str(e))

    def config_fields(self) -> list[ConfigField]:
        return [
            ConfigField("host", "text", "SMTP Host", required=True, default="smtp.gmail.com"),
            ConfigField("port", "number", "SMTP Port", required=True, default=587),
            ConfigField("secure", "checkbox", "Use SSL/TLS", default=False),
            ConfigField("user", "text", "Email Username", required=True, default=""),
            ConfigField("pass", "text", "Email Password", required=True, default=""),
            ConfigField("from", "text", "From Address", default=""),
            ConfigField("to", "text", "To Address(es)", required=True, default=""),
        ]

    def validate_config(self, config: dict | None) -> bool:
        if not config:
            return False
        if any(not config.get(key) for key in ("host", "port", "user", "pass", "to")):
            return False
        try:
            port = int(config["port"])
        except (TypeError, ValueError):
            return False
        if not 1 <= port <= 65535:
            return False
        return all(EMAIL_RE.match(addr.strip()) for addr in str(config["to"]).split(","))


def build_subject(event: NotificationEvent) -> str:
    name, new = event.product_name, event.formatted_new
    savings = event.comparison.savings if event.comparison else None
    if savings and event.change_type == ChangeType.DECREASED:
        return f"💰 {name} - Price Drop! Save {savings.percentage:.1f}% ({new})"
    if event.change_type == ChangeType.DECREASED:
        return f"📉 {name} - Price Decreased to {new}"
    if event.change_type == ChangeType.INCREASED:
        return f"📈 {name} - Price Increased to {new}"
    return f"🔔 {name} - Price Changed to {new}"


def build_text(event: NotificationEvent) -> str:
    lines = [
        f"Price Alert: {event.product_name}",
        "",
        f"{event.formatted_old} → {event.formatted_new}",
        f"Difference: {event.difference}",
        f"Change Type: {event.change_type.value}",
        "",
    ]
    comparison = event.comparison
    if comparison:
        lines += [
            f"Best Deal: {comparison.best.store_name} - {comparison.best.formatted_value}",
            f"Best Deal URL: {comparison.best.url}",
            "",
        ]
        if comparison.savings:
            lines += [f"You Save: {comparison.savings.amount:.2f} ({comparison.savings.percentage:.1f}%)", ""]
        lines.append("All Sources:")
        for s in comparison.all_sources:
            lines.append(f"- {s.store_name}: {s.formatted_value}{' (Changed)' if s.changed else ''}")
    elif event.source_id:
        lines += [f"Store: {event.source_store}", f"URL: {event.source_url}"]

    urls = event.action_urls
    lines += [
        "",
        "Actions:",
        f"View Product: {urls.view_product}",
        f"Mark as Purchased: {urls.purchased}",
        f"Report False Positive: {urls.false_positive}",
        f"Dismiss: {urls.dismiss}",
    ]
    return "\n".join(lines) + "\n"


def build_html(event: NotificationEvent) -> str:
    esc = html.escape
    color = CHANGE_COLORS.get(event.change_type, "#6c757d")
    parts = [
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>",
        "<body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">",
        "<div style=\"max-width: 600px; margin: 0 auto; padding: 20px;\">",
        f"<h2>{change_icon(event.change_type)} Price Alert: {esc(event.product_name)}</h2>",
        f"<div style=\"font-size: 24px; font-weight: bold; color: {color};\">"
        f"{esc(event.formatted_old)} → {esc(event.formatted_new)}</div>",
        f"<p>Difference: {esc(event.difference)}</p>",
    ]

    comparison = event.comparison
    if comparison:
        best = comparison.best
        parts += [
            "<h3>🏆 Best Deal Found</h3>",
            f"<p><strong>{esc(best.store_name)}</strong>: {esc(best.formatted_value)}</p>",
            f"<p><a href=\"{esc(best.url)}\">View Best Deal</a></p>",
        ]
        if comparison.savings:
            parts.append(
                f"<p><strong>💰 You Save: {comparison.savings.amount:.2f} "
                f"({comparison.savings.percentage:.1f}%)</strong></p>"
            )
        parts.append("<h4>All Sources:</h4><ul>")
        for s in comparison.all_sources:
            changed = " (Changed)" if s.changed else ""
            parts.append(f"<li>{esc(s.store_name)}: {esc(s.formatted_value)}{changed}</li>")
        parts.append("</ul>")
    elif event.source_id:
        parts += [
            f"<p>Store: {esc(event.source_store or '')}</p>",
            f"<p><a href=\"{esc(event.source_url or '')}\">View Product</a></p>",
        ]

    urls = event.action_urls
    parts += [
        "<p style=\"text-align: center;\">",
        f"<a href=\"{esc(urls.view_product)}\">View Product</a> | ",
        f"<a href=\"{esc(urls.purchased)}\">Mark as Purchased</a> | ",
        f"<a href=\"{esc(urls.false_positive)}\">False Positive</a> | ",
        f"<a href=\"{esc(urls.dismiss)}\">Dismiss</a>",
        "</p></div></body></html>",
    ]
    return "\n".join(parts)
