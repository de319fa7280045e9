"""
Messenger — Snapshot-Synchronized Chat Core
============================================
Direct and group conversations, reactions, replies, typing indicators and
an administrative layer (bans, mutes, blocks, geo-restrictions) built on a
single shared document that every client pulls, mutates and pushes back.

Package layout::

    messenger/
    ├── config.py          # YAML + .env → typed Python config
    ├── constants.py       # Storage keys, sentinels, content filter
    ├── errors.py          # Validation / policy / transport exceptions
    ├── client.py          # MessengerClient façade (mutate → save)
    ├── store/
    │   ├── entities.py    # Pydantic entities + the Snapshot document
    │   ├── entity_store.py # In-memory collections + accessors
    │   ├── models.py      # SQLAlchemy model for the local mirror
    │   ├── engine.py      # Mirror engine + async thread bridge
    │   └── mirror.py      # Local mirror key/value cache
    ├── engine/
    │   ├── policy.py      # Moderation policy engine
    │   ├── transport.py   # Snapshot transport contract + httpx client
    │   └── sync.py        # Synchronization controller + polling task
    ├── services/
    │   ├── conversation_service.py  # Direct chats, messages, reactions
    │   ├── group_service.py         # Group lifecycle + audit messages
    │   ├── user_service.py          # Accounts, credentials, blocking
    │   ├── admin_service.py         # Roles, ads, geo-bans, stats
    │   ├── session_service.py       # Capability tokens + auth cookie
    │   ├── assistant_service.py     # AI assistant auto-replies
    │   └── seed.py                  # Default data + consistency
    └── api/
        └── main.py        # File-backed snapshot server (FastAPI)
"""

__version__ = "0.1.0"
