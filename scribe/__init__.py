"""Store coding-assistant hook events in SQLite and summarise them as a stats dashboard."""

__version__ = "1.0.0b2"