"""MongoDB connection handling."""

from typing import Dict, Tuple

from pymongo import MongoClient
from pymongo.database import Database

from .config import Settings

KV_COLLECTION = "kv_store"
USER_COLLECTION = "user"

_clients: Dict[Tuple[str, str], MongoClient] = {}


def get_database(settings: Settings) -> Database:
    """Return the configured database. The client connects lazily on first use."""
    key = (settings.database_url, settings.database_name)
    client = _clients.get(key)
    if client is None:
        client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000, tz_aware=True)
        _clients[key] = client
    return client[settings.database_name]


def close_clients() -> None:
    for client in _clients.values():
        client.close()
    _clients.clear()
