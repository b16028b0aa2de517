# ─────────────────────────────────────────────────────────────────
# database.py - Document Store
#
# This file owns all data storage for the application.
# Data is a tree of JSON-like documents addressed by slash paths:
#
#   devices/{deviceId}                 raw device document (firmware)
#   statusHistory/{deviceId}/{entryId} capped alert history
#   notifications/{notificationId}     per-user notifications
#   registrations/{registrationId}     which user added which device
#
# Handlers only ever talk to the DocumentStore interface, so swapping
# the in-memory tree for a hosted realtime database means writing one
# new subclass here and nothing else.
# ─────────────────────────────────────────────────────────────────

import copy
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("database")

# Listener signature: (document path, before, after, event id)
ChangeListener = Callable[[str, Optional[dict], Optional[dict], str], None]


class StoreError(Exception):
    """Raised when the store cannot complete a read or write."""


def now_millis() -> int:
    """Server timestamp in epoch milliseconds."""
    return int(time.time() * 1000)


def split_path(path: str) -> List[str]:
    parts = [part for part in path.strip("/").split("/") if part]
    if not parts:
        raise StoreError("Empty document path")
    return parts


def join_path(*parts: str) -> str:
    return "/".join(str(part).strip("/") for part in parts if str(part).strip("/"))


class WriteBatch:
    """
    Collects writes and applies them all at once on commit().

    Either every operation lands or none of them do. Used by the
    online sweep, the history trim and the notification fanout.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self.operations: List[Tuple[str, str, Any]] = []

    def set(self, path: str, value: Any) -> "WriteBatch":
        self.operations.append(("set", path, copy.deepcopy(value)))
        return self

    def update(self, path: str, fields: Dict[str, Any]) -> "WriteBatch":
        self.operations.append(("update", path, copy.deepcopy(fields)))
        return self

    def delete(self, path: str) -> "WriteBatch":
        self.operations.append(("delete", path, None))
        return self

    def __len__(self) -> int:
        return len(self.operations)

    def commit(self) -> None:
        if self.operations:
            self._store.commit(self)


class DocumentStore(ABC):
    """Path-addressed document store with atomic batches and change feeds."""

    @abstractmethod
    def get(self, path: str) -> Any:
        """Return a copy of the value at path, or None when absent."""

    @abstractmethod
    def commit(self, batch: WriteBatch) -> None:
        """Apply every operation of the batch atomically."""

    @abstractmethod
    def subscribe(self, collection: str, listener: ChangeListener) -> None:
        """Call listener for every change to a document in collection."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def set(self, path: str, value: Any) -> None:
        self.batch().set(path, value).commit()

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        """Merge fields into the document at path. Keys may be sub-paths."""
        self.batch().update(path, fields).commit()

    def delete(self, path: str) -> None:
        self.batch().delete(path).commit()

    def new_id(self) -> str:
        return uuid.uuid4().hex

    def children(self, path: str) -> Dict[str, Any]:
        value = self.get(path)
        return value if isinstance(value, dict) else {}

    def query(self, collection: str, field: str, value: Any) -> List[Tuple[str, dict]]:
        """All (id, document) pairs in collection where document[field] == value."""
        return [
            (doc_id, doc)
            for doc_id, doc in self.children(collection).items()
            if isinstance(doc, dict) and doc.get(field) == value
        ]


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory document tree.

    Writes are serialized by a re-entrant lock. After a commit releases
    the lock, every subscribed listener is told about each document
    whose content actually changed. Listeners may write back into the
    store; those writes publish their own change events in turn.
    """

    def __init__(self):
        self._root: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._listeners: Dict[str, List[ChangeListener]] = {}

    def get(self, path: str) -> Any:
        with self._lock:
            node: Any = self._root
            for part in split_path(path):
                if not isinstance(node, dict) or part not in node:
                    return None
                node = node[part]
            return copy.deepcopy(node)

    def subscribe(self, collection: str, listener: ChangeListener) -> None:
        with self._lock:
            self._listeners.setdefault(collection.strip("/"), []).append(listener)

    def commit(self, batch: WriteBatch) -> None:
        with self._lock:
            touched = self._touched_documents(batch.operations)
            before = {doc: self._peek(doc) for doc in touched}

            staged = copy.deepcopy(self._root)
            for op, path, value in batch.operations:
                if op == "set":
                    self._write(staged, split_path(path), value)
                elif op == "update":
                    if not isinstance(value, dict):
                        raise StoreError(f"Update of '{path}' needs a mapping of fields")
                    for key, field_value in value.items():
                        self._write(staged, split_path(path) + split_path(key), field_value)
                elif op == "delete":
                    self._write(staged, split_path(path), None)
                else:
                    raise StoreError(f"Unknown batch operation '{op}'")
            self._root = staged

            changes = []
            for doc in touched:
                after = self._peek(doc)
                if after != before[doc]:
                    changes.append((doc, before[doc], after))

        self._publish(changes)

    # ── internals ────────────────────────────────────────────────

    def _peek(self, doc_path: str) -> Any:
        node: Any = self._root
        for part in doc_path.split("/"):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def _touched_documents(self, operations) -> List[str]:
        """Document paths (collection/docId) affected by a set of operations."""
        touched: List[str] = []
        for op, path, value in operations:
            parts = split_path(path)
            if len(parts) >= 2:
                candidates = [join_path(parts[0], parts[1])]
            else:
                existing = self._root.get(parts[0])
                keys = set(existing) if isinstance(existing, dict) else set()
                if op == "set" and isinstance(value, dict):
                    keys |= set(value)
                if op == "update" and isinstance(value, dict):
                    keys |= {split_path(key)[0] for key in value}
                candidates = [join_path(parts[0], key) for key in sorted(keys)]
            for doc in candidates:
                if doc not in touched:
                    touched.append(doc)
        return touched

    @staticmethod
    def _write(tree: Dict[str, Any], parts: List[str], value: Any) -> None:
        if value is None:
            trail = []
            node: Any = tree
            for part in parts[:-1]:
                if not isinstance(node, dict) or part not in node:
                    return
                trail.append((node, part))
                node = node[part]
            if isinstance(node, dict):
                node.pop(parts[-1], None)
            # Empty parents disappear, like in a realtime database
            for parent, key in reversed(trail):
                if parent[key] == {}:
                    del parent[key]
            return

        node = tree
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = copy.deepcopy(value)

    def _publish(self, changes) -> None:
        """
        Deliver every change to every listener.

        A failing listener does not stop the others; the first failure
        is re-raised once all changes have been delivered.
        """
        errors = []
        for doc, before, after in changes:
            collection = doc.split("/", 1)[0]
            listeners = list(self._listeners.get(collection, []))
            if not listeners:
                continue
            event_id = uuid.uuid4().hex
            for listener in listeners:
                try:
                    listener(doc, before, after, event_id)
                except Exception as e:
                    logger.exception(f"Change listener failed for '{doc}'")
                    errors.append(e)
        if errors:
            raise errors[0]


# The single store instance used by the running service.
# Tests build their own InMemoryDocumentStore instead.
store = InMemoryDocumentStore()
