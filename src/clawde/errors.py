"""Exception types raised by the bot."""

from __future__ import annotations


class ClawdeError(Exception):
    """Base class for errors the bot raises on purpose."""


class ConfigError(ClawdeError):
    """Required settings are missing or unusable."""


class AttachmentError(ClawdeError):
    """An attachment could not be downloaded."""


class SlotBusyError(ClawdeError):
    """A session was started while another one still owns the slot."""


__all__ = ["AttachmentError", "ClawdeError", "ConfigError", "SlotBusyError"]
