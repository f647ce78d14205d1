from __future__ import annotations

import asyncio
import copy
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from applystorm.db.models import Document


class DocumentStore(Protocol):
    """Async key-path storage in the shape of a realtime-database tree.

    Paths are slash separated (`users/u1/info`). Writing None removes a node;
    parents left empty are pruned.
    """

    async def get(self, path: str) -> Any: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def update(self, path: str, partial: dict[str, Any]) -> None: ...

    async def create(self, path: str, value: Any) -> bool: ...


def split_path(path: str) -> list[str]:
    stripped = path.strip().strip("/")
    if not stripped:
        return []
    segments = stripped.split("/")
    if any(not segment.strip() for segment in segments):
        raise ValueError(f"invalid store path '{path}'")
    return segments


def get_in(tree: Any, segments: list[str]) -> Any:
    node = tree
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return copy.deepcopy(node)


def set_in(tree: dict[str, Any], segments: list[str], value: Any) -> dict[str, Any]:
    """Return `tree` with `value` written at `segments`; empty dicts count as deletion."""
    if not segments:
        return copy.deepcopy(value) if isinstance(value, dict) else {}

    head, rest = segments[0], segments[1:]
    child = tree.get(head)
    if rest:
        child = set_in(child if isinstance(child, dict) else {}, rest, value)
    else:
        child = copy.deepcopy(value)

    if child is None or child == {}:
        tree.pop(head, None)
    else:
        tree[head] = child
    return tree


def update_in(tree: dict[str, Any], segments: list[str], partial: dict[str, Any]) -> dict[str, Any]:
    for key, value in partial.items():
        tree = set_in(tree, segments + split_path(key), value)
    return tree


class MemoryDocumentStore:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._tree: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()

    async def get(self, path: str) -> Any:
        async with self._lock:
            value = get_in(self._tree, split_path(path))
            return None if value == {} else value

    async def set(self, path: str, value: Any) -> None:
        async with self._lock:
            self._tree = set_in(self._tree, split_path(path), value)

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        async with self._lock:
            self._tree = update_in(self._tree, split_path(path), partial)

    async def create(self, path: str, value: Any) -> bool:
        segments = split_path(path)
        async with self._lock:
            if get_in(self._tree, segments) is not None:
                return False
            self._tree = set_in(self._tree, segments, value)
            return True

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._tree)


class SqlDocumentStore:
    """Document tree persisted through SQLAlchemy, one row per top-level key.

    Every write reads and rewrites its row inside one transaction with the row
    locked, which makes `create` a compare-and-set.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    async def get(self, path: str) -> Any:
        return await asyncio.to_thread(self._get, split_path(path))

    async def set(self, path: str, value: Any) -> None:
        segments = self._writable(path)
        await asyncio.to_thread(self._write, segments, lambda tree: (set_in(tree, segments, value), None))

    async def update(self, path: str, partial: dict[str, Any]) -> None:
        segments = split_path(path)
        if not segments:
            for key, value in partial.items():
                await self.set(key, value)
            return
        await asyncio.to_thread(self._write, segments, lambda tree: (update_in(tree, segments, partial), None))

    async def create(self, path: str, value: Any) -> bool:
        segments = self._writable(path)

        def mutate(tree: dict[str, Any]) -> tuple[dict[str, Any], bool]:
            if get_in(tree, segments) is not None:
                return tree, False
            return set_in(tree, segments, value), True

        return await asyncio.to_thread(self._write, segments, mutate)

    @staticmethod
    def _writable(path: str) -> list[str]:
        segments = split_path(path)
        if not segments:
            raise ValueError("cannot write to the store root")
        return segments

    def _get(self, segments: list[str]) -> Any:
        with self.session_factory() as session:
            if not segments:
                rows = session.scalars(select(Document)).all()
                tree = {row.key: copy.deepcopy(row.value) for row in rows if row.value is not None}
                return tree or None
            row = session.get(Document, segments[0])
            if row is None:
                return None
            return get_in({segments[0]: row.value}, segments)

    def _write(self, segments: list[str], mutate) -> Any:
        key = segments[0]
        with self.session_factory() as session, session.begin():
            row = session.scalars(select(Document).where(Document.key == key).with_for_update()).first()
            tree = {key: copy.deepcopy(row.value)} if row is not None and row.value is not None else {}
            tree, result = mutate(tree)
            new_value = tree.get(key)

            if new_value is None:
                if row is not None:
                    session.delete(row)
            elif row is None:
                session.add(Document(key=key, value=new_value))
            else:
                row.value = new_value
            return result
