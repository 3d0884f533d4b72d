"""appdeck database layer."""

from appdeck.db.connection import Database
from appdeck.db.migrations import MIGRATIONS, run_migrations
from appdeck.db.models import App, Chat, Message
from appdeck.db.repository import Repository
from appdeck.db.schema import initialize

__all__ = [
    "App",
    "Chat",
    "Database",
    "MIGRATIONS",
    "Message",
    "Repository",
    "initialize",
    "run_migrations",
]
