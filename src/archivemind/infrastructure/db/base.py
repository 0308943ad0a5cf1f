# src/archivemind/infrastructure/db/base.py
"""
Database engine construction.

Permission bitfields and other snapshot data are stored in JSON columns; the custom
serializer keeps large ints and datetimes JSON-safe.
"""

import json
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


# --- Custom JSON Serializer ---
def _custom_json_serializer(obj):
    """
    Handles non-serializable types for JSON conversion.
    Datetimes become ISO-8601 strings; sets become sorted lists.
    """
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Creates an engine for the given URL.
    SQLite gets `check_same_thread=False` (the scheduler and API share connections);
    in-memory SQLite additionally uses a StaticPool so every session sees the same DB.
    """
    kwargs: Dict[str, Any] = {
        "echo": echo,
        "json_serializer": lambda obj: json.dumps(obj, default=_custom_json_serializer),
    }
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 3600
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
    return create_engine(database_url, **kwargs)
