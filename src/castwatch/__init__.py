"""castwatch: poll video channels and feeds, notify chats once per event."""

__version__ = "0.1.0"
