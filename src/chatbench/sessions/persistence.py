"""
Store Persistence

Writes the session store into key-value storage as a side effect of its
mutations. Writes happen in one background task that coalesces bursts of
changes (e.g. a delta per streamed chunk) into as few writes as possible, so
streaming never waits on storage.
"""

import asyncio
import json

from loguru import logger

from ..constants import STORAGE_KEY, STORAGE_VERSION
from ..database import KeyValueStorage
from .manager import SessionStore, StoreChange

# Changes that do not touch the persisted part of the state
NON_PERSISTED_ACTIONS = {"set_generating", "load_snapshot"}


class StorePersister:
    """Hydrates a SessionStore from storage and keeps storage up to date."""

    def __init__(self, store: SessionStore, storage: KeyValueStorage, key: str = STORAGE_KEY):
        self.store = store
        self.storage = storage
        self.key = key
        self._dirty = False
        self._writer_task: asyncio.Task | None = None
        self._unsubscribe = None

    async def hydrate(self) -> bool:
        """
        Load persisted state into the store.
        Returns True if state was found and loaded. A corrupt payload is logged and skipped.
        """
        raw = await self.storage.get(self.key)
        if not raw:
            logger.info(f"No persisted state under '{self.key}'")
            return False

        try:
            payload = json.loads(raw)
            self.store.load_snapshot(payload.get("state") or {})
        except Exception as e:
            logger.error(f"Failed to hydrate store from '{self.key}': {e}")
            return False

        logger.info(f"✅ Store hydrated from '{self.key}'")
        return True

    def attach(self):
        """Start persisting store changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_change)

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def _on_change(self, change: StoreChange):
        if change.action in NON_PERSISTED_ACTIONS:
            return
        self._dirty = True
        self._schedule_write()

    def _schedule_write(self):
        if self._writer_task is not None and not self._writer_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop here; the next flush() picks the change up
            return
        self._writer_task = loop.create_task(self._write_pending())

    async def _write_pending(self):
        while self._dirty:
            self._dirty = False
            payload = json.dumps({"state": self.store.snapshot(), "version": STORAGE_VERSION})
            try:
                await self.storage.set(self.key, payload)
            except Exception as e:
                logger.error(f"Failed to persist store under '{self.key}': {e}")
                # left dirty so the next change or flush retries
                self._dirty = True
                break

    async def flush(self):
        """Wait until every pending change has been written."""
        if self._writer_task is not None and not self._writer_task.done():
            await self._writer_task
        if self._dirty:
            await self._write_pending()

    async def clear(self):
        """Remove the persisted state."""
        await self.storage.remove(self.key)
