"""Domain models for the appdeck database layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class App:
    name: str
    path: str  # relative to the apps base dir, or absolute
    id: int | None = None  # set after insert
    created_at: str | None = None


@dataclass
class Chat:
    app_id: int
    title: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class Message:
    chat_id: int
    role: str
    content: str
    commit_hash: str | None = None  # version produced by this message, if any
    id: int | None = None  # ordinal position within the store
    created_at: str | None = None
