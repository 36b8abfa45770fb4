"""
storage/cache.py

Typed, time-boxed views over :class:`storage.db.LocalStore` boxes.

TypedCache[T]  -- an ordered collection of entities keyed by a business key
ValueCache[T]  -- a single cached value (dashboard stats, current user)

Both take explicit encode/decode functions; for pydantic models the
defaults are ``model_dump_json`` / ``model_validate_json``. Freshness is
measured against an injectable clock so tests can move time forward.

Writes are best-effort: a failing SQLite write is logged and swallowed,
because the backend remains the system of record and the next successful
fetch will repopulate the box.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from storage.db import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _model_codec(model: type[BaseModel]) -> tuple[Callable[[BaseModel], str], Callable[[str], BaseModel]]:
    return (lambda item: item.model_dump_json()), model.model_validate_json


class TypedCache(Generic[T]):
    """
    Ordered entity cache stored in one box.

    Args:
        store:   Backing local store.
        box:     Box name.
        ttl:     Freshness window.
        key_of:  Extracts the cache key from an entity.
        model:   Pydantic model used for the default codec.
        encode:  Custom serialiser, overrides *model*.
        decode:  Custom deserialiser, overrides *model*.
        clock:   Returns the current UTC time.
    """

    def __init__(
        self,
        store: LocalStore,
        box: str,
        *,
        ttl: timedelta,
        key_of: Callable[[T], str],
        model: type[BaseModel] | None = None,
        encode: Callable[[T], str] | None = None,
        decode: Callable[[str], T] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if model is not None:
            default_encode, default_decode = _model_codec(model)
            encode = encode or default_encode
            decode = decode or default_decode
        if encode is None or decode is None:
            raise ValueError(f"Cache '{box}' needs a model or an encode/decode pair.")
        self._store = store
        self.box = box
        self.ttl = ttl
        self._key_of = key_of
        self._encode = encode
        self._decode = decode
        self._clock = clock

    # -----------------------------------------------------------------------
    # Freshness
    # -----------------------------------------------------------------------

    def last_sync(self) -> datetime | None:
        return self._store.last_sync(self.box)

    def age(self) -> timedelta | None:
        synced = self.last_sync()
        if synced is None:
            return None
        return self._clock() - synced

    def is_fresh(self) -> bool:
        age = self.age()
        return age is not None and age < self.ttl

    def is_expired(self) -> bool:
        return not self.is_fresh()

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def _safe_decode(self, payload: str) -> T | None:
        try:
            return self._decode(payload)
        except (ModelValidationError, ValueError) as exc:
            logger.warning("Dropping undecodable entry in box %s: %s", self.box, exc)
            return None

    def read_all(self) -> list[T]:
        items = (self._safe_decode(p) for p in self._store.box_all(self.box))
        return [item for item in items if item is not None]

    def read(self, key: str) -> T | None:
        payload = self._store.box_get(self.box, key)
        return self._safe_decode(payload) if payload is not None else None

    def count(self) -> int:
        return self._store.box_count(self.box)

    # -----------------------------------------------------------------------
    # Writes (best-effort)
    # -----------------------------------------------------------------------

    def replace_all(self, items: Iterable[T]) -> None:
        pairs = [(self._key_of(item), self._encode(item)) for item in items]
        try:
            self._store.box_replace(self.box, pairs, self._clock())
        except sqlite3.Error as exc:
            logger.warning("Cache write failed for box %s: %s", self.box, exc)

    def upsert(self, item: T, stamp: bool = False) -> None:
        """Insert or update one entry. Freshness is untouched unless *stamp* is set."""
        try:
            self._store.box_put(
                self.box, self._key_of(item), self._encode(item), self._clock(), stamp=stamp
            )
        except sqlite3.Error as exc:
            logger.warning("Cache upsert failed for box %s: %s", self.box, exc)

    def remove(self, key: str) -> None:
        try:
            self._store.box_delete(self.box, key)
        except sqlite3.Error as exc:
            logger.warning("Cache delete failed for box %s: %s", self.box, exc)

    def clear(self) -> None:
        try:
            self._store.box_clear(self.box)
        except sqlite3.Error as exc:
            logger.warning("Cache clear failed for box %s: %s", self.box, exc)


class ValueCache(TypedCache[T]):
    """A box holding exactly one value under a fixed key."""

    _KEY = "current"

    def __init__(self, store: LocalStore, box: str, *, ttl: timedelta, **kwargs) -> None:
        super().__init__(store, box, ttl=ttl, key_of=lambda _item: self._KEY, **kwargs)

    def get(self) -> T | None:
        return self.read(self._KEY)

    def put(self, value: T) -> None:
        # The single value is the whole box, so writing it counts as a sync.
        self.upsert(value, stamp=True)
