"""notesync: background sync of local notes, todos and chats to a GitHub repository."""

__version__ = "0.1.0"
