"""nagbot: recurring chore reminders with Telegram delivery."""

__version__ = "0.1.0"
