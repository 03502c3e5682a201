#!/usr/bin/env python3
"""
Change notifications for snapshot refreshes.

A change feed only shortens the wait before the next refresh; the polling
loops of the coordinator stay correct without one.

- PollingChangeFeed (default): reads a version stamp at a fixed interval and
  emits an event whenever it differs from the previous read.
- RedisChangeFeed: push adapter over a Redis stream. Each stream entry holds
  a JSON payload under the field 'data' with table/row_id/kind keys.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from gatewars.errors import NetworkError
from gatewars.models.redis_config import REDIS_SETTINGS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeFilter:
    table: str
    row_id: Optional[str] = None  # None matches every row of the table

    def matches(self, event: "ChangeEvent") -> bool:
        if event.table != self.table:
            return False
        return self.row_id is None or event.row_id == self.row_id


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    row_id: Optional[str]
    kind: str  # "insert" | "update" | "delete" | "poll"
    payload: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> Optional["ChangeEvent"]:
        table = payload.get("table")
        if not table:
            return None
        row_id = payload.get("row_id")
        return cls(
            table=str(table),
            row_id=str(row_id) if row_id is not None else None,
            kind=str(payload.get("kind", "update")),
            payload=payload.get("data") or {},
        )

    def to_payload(self) -> dict:
        return {
            "table": self.table,
            "row_id": self.row_id,
            "kind": self.kind,
            "data": self.payload,
        }


class ChangeFeed(Protocol):
    def subscribe(self, change_filter: ChangeFilter) -> AsyncGenerator[ChangeEvent, None]: ...

    async def close(self) -> None: ...


class PollingChangeFeed:
    def __init__(
        self,
        read_version: Callable[[ChangeFilter], Awaitable[Any]],
        interval: float,
    ) -> None:
        self.read_version = read_version
        self.interval = interval
        self._closed = asyncio.Event()

    async def subscribe(self, change_filter: ChangeFilter) -> AsyncGenerator[ChangeEvent, None]:
        previous = await self.read_version(change_filter)
        while not self._closed.is_set():
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass
            current = await self.read_version(change_filter)
            if current != previous:
                previous = current
                yield ChangeEvent(
                    table=change_filter.table,
                    row_id=change_filter.row_id,
                    kind="poll",
                )

    async def close(self) -> None:
        self._closed.set()


class RedisChangeFeed:
    def __init__(
        self,
        url: str | None = None,
        stream: str | None = None,
        client: Any = None,
        block_ms: int = 1000,
    ) -> None:
        self.url = url or str(REDIS_SETTINGS.redis_url)
        self.stream = stream or REDIS_SETTINGS.change_stream
        self.block_ms = block_ms
        # decode_responses=True so we deal with str, not bytes
        self._redis = client if client is not None else aioredis.from_url(self.url, decode_responses=True)
        self._closed = False
        # resume point shared by successive subscriptions
        self._last_id = "$"

    @property
    def client(self):
        return self._redis

    async def publish(self, event: ChangeEvent, maxlen: Optional[int] = None) -> str:
        return await self._redis.xadd(
            name=self.stream,
            fields={"data": json.dumps(event.to_payload())},
            maxlen=maxlen,
            approximate=True,
        )

    async def read_events(
        self, last_id: str = "$", count: int = 50
    ) -> list[tuple[str, Optional[ChangeEvent]]]:
        try:
            entries = await self._redis.xread(
                streams={self.stream: last_id},
                count=count,
                block=self.block_ms,
            )
        except RedisError as exc:
            raise NetworkError(f"change stream unavailable: {exc}") from exc
        if not entries:
            return []
        out: list[tuple[str, Optional[ChangeEvent]]] = []
        for _, messages in entries:
            for message_id, fields in messages:
                payload_raw = fields.get("data")
                try:
                    payload = json.loads(payload_raw) if payload_raw else {}
                except json.JSONDecodeError:
                    logger.warning("skipping undecodable change entry %s", message_id)
                    out.append((message_id, None))
                    continue
                out.append((message_id, ChangeEvent.from_payload(payload)))
        return out

    async def subscribe(self, change_filter: ChangeFilter) -> AsyncGenerator[ChangeEvent, None]:
        while not self._closed:
            for message_id, event in await self.read_events(last_id=self._last_id):
                self._last_id = message_id
                if event is not None and change_filter.matches(event):
                    yield event

    async def close(self) -> None:
        self._closed = True
        await self._redis.close()
