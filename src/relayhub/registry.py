"""Connection registry: owner → key → live connections.

Connections are grouped by an owner identity (user id, UUID, ...) and a
topic key. ``send`` reaches every connection in one ``(owner, key)`` bucket;
``send_all`` reaches every owner's bucket for a key.

Locking is per bucket. The index lock only covers lookup, creation and
collection of buckets, and no lock is ever held across an ``await``, so
traffic on one bucket never stalls another.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Hashable
from typing import Any

from relayhub.core.types import Delivery, OnData, Registration, SendReport
from relayhub.exceptions import InvalidIdentity
from relayhub.transport import Connection

log = logging.getLogger(__name__)


def _require(value: Any, name: str) -> None:
    if value is None or (isinstance(value, (str, bytes)) and not value):
        raise InvalidIdentity(name)


class _Bucket:
    """Registrations for one ``(owner, key)`` pair."""

    __slots__ = ("lock", "entries", "dead")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: list[Registration] = []
        # Set once the bucket has been dropped from the index.
        self.dead = False


class ConnectionRegistry:
    """In-memory index of live connections.

    >>> registry = ConnectionRegistry()
    >>> reg = registry.register("b", "messaging", ws)
    >>> await registry.send("b", "messaging", "hello")
    >>> await registry.send_all("messaging", "ping")
    """

    def __init__(self) -> None:
        self._index: dict[Hashable, dict[Hashable, _Bucket]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        owner: Hashable,
        key: Hashable,
        connection: Connection,
        on_data: OnData | None = None,
    ) -> Registration:
        """Track *connection* under ``(owner, key)`` until it closes or errors.

        *on_data* receives each inbound payload once the caller drives
        ``Registration.listen()`` (or ``dispatch``). Does not check that the
        connection is open.
        """
        _require(owner, "owner")
        _require(key, "key")
        registration = Registration(owner, key, connection, on_data, registry=self)
        while True:
            bucket = self._bucket(owner, key, create=True)
            with bucket.lock:
                if bucket.dead:
                    continue
                bucket.entries.append(registration)
                break
        log.debug(
            "Registered connection #%s (%s) under owner=%r key=%r",
            registration.id,
            id(connection),
            owner,
            key,
        )
        return registration

    def remove(self, owner: Hashable, key: Hashable, registration_id: int) -> bool:
        """Drop a registration by id. Returns True only for the call that removed it."""
        bucket = self._bucket(owner, key)
        if bucket is None:
            return False
        with bucket.lock:
            for i, entry in enumerate(bucket.entries):
                if entry.id == registration_id:
                    del bucket.entries[i]
                    entry.removed = True
                    break
            else:
                return False
            empty = not bucket.entries
        if empty:
            self._collect(owner, key, bucket)
        log.debug("Removed connection #%s from owner=%r key=%r", registration_id, owner, key)
        return True

    def unregister(self, registration: Registration) -> bool:
        """Drop *registration*; shorthand for ``remove`` with its own coordinates."""
        return self.remove(registration.owner, registration.key, registration.id)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def send(
        self,
        owner: Hashable,
        key: Hashable,
        payload: Any,
        *,
        strict: bool = True,
        **options: Any,
    ) -> SendReport:
        """Send *payload* to every connection in ``(owner, key)``.

        Targets are the bucket's contents at call time. Writes run
        concurrently and *options* go to each ``connection.send`` unchanged.
        A failed write never removes its connection. With *strict*, any
        failure raises ``DeliveryError`` after all writes have finished.
        """
        _require(owner, "owner")
        _require(key, "key")
        report = await self._fan_out(self.connections(owner, key), payload, options)
        if strict:
            report.raise_for_failures()
        return report

    async def send_all(
        self,
        key: Hashable,
        payload: Any,
        *,
        strict: bool = True,
        **options: Any,
    ) -> SendReport:
        """Send *payload* to ``key`` under every owner currently holding it."""
        _require(key, "key")
        reports = await asyncio.gather(
            *[
                self.send(owner, key, payload, strict=False, **options)
                for owner in self.owners(key)
            ]
        )
        report = SendReport.merge(reports)
        if strict:
            report.raise_for_failures()
        return report

    async def _fan_out(
        self,
        targets: list[Registration],
        payload: Any,
        options: dict[str, Any],
    ) -> SendReport:
        if not targets:
            return SendReport()
        results = await asyncio.gather(
            *[reg.connection.send(payload, **options) for reg in targets],
            return_exceptions=True,
        )
        return SendReport(
            [
                Delivery(
                    reg.id,
                    reg.owner,
                    reg.key,
                    result if isinstance(result, BaseException) else None,
                )
                for reg, result in zip(targets, results)
            ]
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def connections(self, owner: Hashable, key: Hashable) -> list[Registration]:
        """Snapshot of the registrations in ``(owner, key)``."""
        bucket = self._bucket(owner, key)
        if bucket is None:
            return []
        with bucket.lock:
            return list(bucket.entries)

    def owners(self, key: Hashable) -> list[Hashable]:
        """Owners that currently hold at least one connection under *key*."""
        with self._lock:
            return [owner for owner, keys in self._index.items() if key in keys]

    def keys(self, owner: Hashable | None = None) -> list[Hashable]:
        """Keys in use, for one owner or across all of them."""
        with self._lock:
            if owner is not None:
                return list(self._index.get(owner, {}))
            seen: dict[Hashable, None] = {}
            for keys in self._index.values():
                seen.update(dict.fromkeys(keys))
            return list(seen)

    def count(self, owner: Hashable | None = None, key: Hashable | None = None) -> int:
        """Number of live registrations, optionally filtered by owner and/or key."""
        total = 0
        for bucket_owner, bucket_key, bucket in self._buckets():
            if owner is not None and bucket_owner != owner:
                continue
            if key is not None and bucket_key != key:
                continue
            with bucket.lock:
                total += len(bucket.entries)
        return total

    def stats(self) -> dict[str, int]:
        """Aggregate counts across the whole index."""
        buckets = self._buckets()
        connections = 0
        for _, _, bucket in buckets:
            with bucket.lock:
                connections += len(bucket.entries)
        return {
            "owners": len({owner for owner, _, _ in buckets}),
            "keys": len({key for _, key, _ in buckets}),
            "buckets": len(buckets),
            "connections": connections,
        }

    def clear(self) -> int:
        """Forget every registration (process teardown). Transports stay open."""
        with self._lock:
            dropped = 0
            for keys in self._index.values():
                for bucket in keys.values():
                    with bucket.lock:
                        for entry in bucket.entries:
                            entry.removed = True
                        dropped += len(bucket.entries)
                        bucket.entries.clear()
                        bucket.dead = True
            self._index.clear()
        log.debug("Cleared %d connection(s) from registry", dropped)
        return dropped

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bucket(self, owner: Hashable, key: Hashable, *, create: bool = False) -> _Bucket | None:
        with self._lock:
            keys = self._index.get(owner)
            if keys is None:
                if not create:
                    return None
                keys = self._index[owner] = {}
            bucket = keys.get(key)
            if bucket is None and create:
                bucket = keys[key] = _Bucket()
            return bucket

    def _buckets(self) -> list[tuple[Hashable, Hashable, _Bucket]]:
        with self._lock:
            return [
                (owner, key, bucket)
                for owner, keys in self._index.items()
                for key, bucket in keys.items()
            ]

    def _collect(self, owner: Hashable, key: Hashable, bucket: _Bucket) -> None:
        # Lock order is index, then bucket.
        with self._lock:
            keys = self._index.get(owner)
            if keys is None or keys.get(key) is not bucket:
                return
            with bucket.lock:
                if bucket.entries:
                    return
                bucket.dead = True
            del keys[key]
            if not keys:
                del self._index[owner]
