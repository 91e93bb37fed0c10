"""Notification transports."""

from webtracker.notifiers.base import Notifier, NotifyResult
from webtracker.notifiers.discord import DiscordNotifier
from webtracker.notifiers.email import EmailNotifier

__all__ = ["DiscordNotifier", "EmailNotifier", "Notifier", "NotifyResult"]
