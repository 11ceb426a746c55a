"""
Key-value storage adapters for persisted licensing state.

The engine treats every persisted item as an opaque JSON-serialisable blob
addressed by a short key. Three backends are provided:

- InMemoryStore: process-local dict (tests, single-process tools)
- RedisStore: Redis strings holding JSON, lazy connection
- SqlOptionStore: one row per key in the license_options table (SQLAlchemy)

build_store() picks Redis, then SQL, then memory based on settings.
Writes are last-write-wins; no locking is attempted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import redis
from sqlalchemy import Column, DateTime, String, Text, create_engine, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from licensing.config import LicensingSettings

logger = logging.getLogger(__name__)

KEY_PREFIX = "license:"

Base = declarative_base()


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dict-backed store. Values are JSON round-tripped to mimic real backends."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list:
        return sorted(self._data)


class RedisStore:
    """Redis-backed store. Read failures degrade to the default value."""

    def __init__(self, redis_url: str, prefix: str = KEY_PREFIX) -> None:
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis: Optional[redis.Redis] = None

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self._get_redis().get(self._key(key))
        except redis.RedisError as e:
            logger.warning("License store get failed", extra={"key": key, "error": str(e)})
            return default
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("License store value is not JSON", extra={"key": key})
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            self._get_redis().set(self._key(key), json.dumps(value))
        except redis.RedisError as e:
            logger.warning("License store set failed", extra={"key": key, "error": str(e)})

    def delete(self, key: str) -> None:
        try:
            self._get_redis().delete(self._key(key))
        except redis.RedisError as e:
            logger.warning("License store delete failed", extra={"key": key, "error": str(e)})


class LicenseOption(Base):
    """
    One persisted licensing blob.

    Attributes:
        name: Store key (e.g. "license", "runtime_cache")
        value: JSON encoded value
        updated_at: Last write time
    """

    __tablename__ = "license_options"

    name = Column(String(191), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Last write time",
    )

    def __repr__(self) -> str:
        return f"<LicenseOption(name={self.name})>"


class SqlOptionStore:
    """SQLAlchemy-backed store using the license_options table."""

    def __init__(self, database_url: str, create_tables: bool = True) -> None:
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        self._engine = create_engine(database_url, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        if create_tables:
            Base.metadata.create_all(self._engine)

    def get(self, key: str, default: Any = None) -> Any:
        session = self._session_factory()
        try:
            row = session.get(LicenseOption, key)
            if row is None:
                return default
            return json.loads(row.value)
        except (SQLAlchemyError, ValueError) as e:
            logger.warning("License store get failed", extra={"key": key, "error": str(e)})
            return default
        finally:
            session.close()

    def set(self, key: str, value: Any) -> None:
        session = self._session_factory()
        try:
            row = session.get(LicenseOption, key)
            encoded = json.dumps(value)
            now = datetime.now(timezone.utc)
            if row is None:
                session.add(LicenseOption(name=key, value=encoded, updated_at=now))
            else:
                row.value = encoded
                row.updated_at = now
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("License store set failed", extra={"key": key, "error": str(e)})
        finally:
            session.close()

    def delete(self, key: str) -> None:
        session = self._session_factory()
        try:
            row = session.get(LicenseOption, key)
            if row is not None:
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("License store delete failed", extra={"key": key, "error": str(e)})
        finally:
            session.close()


def build_store(settings: LicensingSettings) -> KeyValueStore:
    """Choose a backend: Redis when configured, then SQL, then memory."""
    if settings.redis_url:
        return RedisStore(settings.redis_url)
    if settings.database_url:
        return SqlOptionStore(settings.database_url)
    logger.info("No persistent license store configured; using in-memory store")
    return InMemoryStore()
