"""Discord webhook notification."""

import logging

import requests

from webtracker.config import Settings
from webtracker.models import ChangeType, NotificationEvent, utcnow
from webtracker.notifiers.base import Notifier, NotifyResult
from webtracker.trackers.base import ConfigField

logger = logging.getLogger(__name__)

WEBHOOK_MARKER = "discord.com/api/webhooks/"

CHANGE_COLORS = {
    ChangeType.DECREASED: 0x28A745,
    ChangeType.INCREASED: 0xDC3545,
}
DEFAULT_COLOR = 0x007BFF

# Discord caps embed size; longer source lists are cut
MAX_LISTED_SOURCES = 5


class DiscordNotifier(Notifier):
    """
    Post change alerts to a Discord channel webhook.

    Config keys: webhookUrl (falls back to DISCORD_WEBHOOK), username,
    mentionRole, includeImage.
    """

    kind = "discord"
    name = "Discord Notifier"
    description = "Send notifications to Discord channels via webhooks"

    def __init__(self, settings: Settings | None = None, timeout: float = 10):
        self.settings = settings or Settings()
        self.timeout = timeout
        self.webhook_url: str | None = None
        self.options: dict = {}

    def initialize(self, config: dict) -> NotifyResult:
        config = config or {}
        url = config.get("webhookUrl") or self.settings.discord_webhook
        self.webhook_url = None
        if not url:
            return NotifyResult.fail("Discord webhook URL is required")
        if not isinstance(url, str) or WEBHOOK_MARKER not in url:
            return NotifyResult.fail("Invalid Discord webhook URL format")
        self.webhook_url = url
        self.options = config
        return NotifyResult.ok()

    def notify(self, event: NotificationEvent) -> NotifyResult:
        if not self.webhook_url:
            return NotifyResult.fail("Discord notifier not initialized")

        payload = build_payload(
            event,
            username=self.options.get("username"),
            mention_role=self.options.get("mentionRole"),
            include_image=self.options.get("includeImage", True),
        )
        try:
            logger.debug("Discord: sending alert for %s", event.product_name)
            resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            logger.debug("Discord response status: %d", resp.status_code)
            if not resp.ok:
                logger.error("Discord API error (status %d): %s", resp.status_code, resp.text)
                return NotifyResult.fail(f"Discord API error: {resp.status_code} - {resp.text}")
            logger.info("Discord: alert sent for %s", event.product_name)
            return NotifyResult.ok(resp.headers.get("x-ratelimit-reset"))
        except requests.exceptions.RequestException as e:
            logger.error("Discord request failed: %s", e)
            return NotifyResult.fail(str(e))

    def config_fields(self) -> list[ConfigField]:
        return [
            ConfigField("webhookUrl", "text", "Discord Webhook URL", required=True, default=""),
            ConfigField("username", "text", "Bot Username (optional)", default="Price Tracker"),
            ConfigField("mentionRole", "text", "Role to Mention (optional)", default=""),
            ConfigField("includeImage", "checkbox", "Include Screenshot (if available)", default=True),
        ]

    def validate_config(self, config: dict | None) -> bool:
        url = (config or {}).get("webhookUrl")
        return isinstance(url, str) and WEBHOOK_MARKER in url


def build_payload(
    event: NotificationEvent,
    username: str | None = None,
    mention_role: str | None = None,
    include_image: bool = True,
) -> dict:
    fields = [
        {
            "name": "💰 Price Change",
            "value": f"{event.formatted_old} → **{event.formatted_new}**\nDifference: {event.difference}",
            "inline": False,
        }
    ]

    comparison = event.comparison
    if comparison:
        best = comparison.best
        fields.append({
            "name": "🏆 Best Deal",
            "value": f"**{best.store_name}**: {best.formatted_value}\n[View Deal]({best.url})",
            "inline": True,
        })
        if comparison.savings:
            emoji = "🔥" if comparison.savings.percentage >= 20 else "💸"
            fields.append({
                "name": f"{emoji} Savings",
                "value": f"{comparison.savings.amount:.2f} ({comparison.savings.percentage:.1f}%)",
                "inline": True,
            })
        listed = "\n".join(
            f"• **{s.store_name}**: {s.formatted_value}{' ✓' if s.changed else ''}"
            for s in comparison.all_sources[:MAX_LISTED_SOURCES]
        )
        if len(comparison.all_sources) > MAX_LISTED_SOURCES:
            listed += "\n... and more"
        fields.append({"name": "📊 All Sources", "value": listed, "inline": False})
    elif event.source_id:
        fields.append({
            "name": "🏪 Store",
            "value": f"[{event.source_store}]({event.source_url})",
            "inline": True,
        })

    urls = event.action_urls
    fields.append({
        "name": "⚡ Actions",
        "value": " • ".join([
            f"[View Product]({urls.view_product})",
            f"[Purchased]({urls.purchased})",
            f"[False Positive]({urls.false_positive})",
            f"[Dismiss]({urls.dismiss})",
        ]),
        "inline": False,
    })

    embed = {
        "title": f"🔔 {event.product_name}",
        "color": CHANGE_COLORS.get(event.change_type, DEFAULT_COLOR),
        "fields": fields,
        "footer": {"text": "Price Tracker"},
        "timestamp": utcnow().isoformat(),
    }
    if include_image and event.screenshot:
        shot = event.screenshot
        embed["image"] = {"url": shot if shot.startswith("http") else f"data:image/jpeg;base64,{shot}"}

    payload: dict = {"embeds": [embed]}
    if username:
        payload["username"] = username
    if mention_role:
        payload["content"] = f"<@&{mention_role}>"
    return payload
