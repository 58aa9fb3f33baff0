"""Cached stay views with an explicit stay id -> view index.

Every cached collection of stays ("view") is registered under a key. The
cache keeps, for each stay id, the set of views that hold it and its position
in each, so an optimistic patch touches exactly the affected entries and a
rollback can restore them mechanically.

All methods are synchronous. Under the single-threaded event loop a patch,
commit or rollback is therefore atomic for every reader.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from models.stay import Stay, StayUpdate

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Pre-patch state of one stay in every view that held it."""

    stay_id: str
    original: Stay
    update: StayUpdate
    prior: dict[str, Stay] = field(default_factory=dict)


class StayCache:
    """Keyed stay views plus the bookkeeping for optimistic patches."""

    def __init__(self) -> None:
        self._views: dict[str, list[Stay]] = {}
        self._positions: dict[str, dict[str, int]] = {}
        self._index: dict[str, set[str]] = {}
        self._pending: dict[str, Snapshot] = {}
        self._loaded_at: dict[str, int] = {}
        self.version = 0

    # Views

    def load(self, key: str, stays: Iterable[Stay]) -> None:
        """Replace a view's contents with freshly fetched stays.

        Stays with a pending patch keep their optimistic version; the fresh
        record becomes the rollback target for this view.
        """
        self._unindex(key)

        entries = list(stays)
        positions: dict[str, int] = {}
        for i, stay in enumerate(entries):
            snapshot = self._pending.get(stay.id)
            if snapshot is not None:
                snapshot.prior[key] = stay
                entries[i] = snapshot.update.apply(stay)
            positions[stay.id] = i
            self._index.setdefault(stay.id, set()).add(key)

        self._views[key] = entries
        self._positions[key] = positions
        self.version += 1
        self._loaded_at[key] = self.version

    def drop(self, key: str) -> None:
        """Forget a view."""
        self._unindex(key)
        self._views.pop(key, None)
        self._positions.pop(key, None)
        self._loaded_at.pop(key, None)
        self.version += 1

    def clear(self) -> None:
        self._views.clear()
        self._positions.clear()
        self._index.clear()
        self._loaded_at.clear()
        self.version += 1

    def view(self, key: str) -> list[Stay]:
        """Current contents of a view (a copy)."""
        return list(self._views.get(key, []))

    def view_keys(self) -> list[str]:
        return list(self._views)

    def views_for(self, stay_id: str) -> set[str]:
        """Keys of the views that currently hold a stay."""
        return set(self._index.get(stay_id, ()))

    def get(self, stay_id: str) -> Stay | None:
        """The cached version of a stay, from the most recently loaded view holding it."""
        keys = self._index.get(stay_id)
        if not keys:
            return None
        key = max(keys, key=lambda k: self._loaded_at.get(k, 0))
        return self._views[key][self._positions[key][stay_id]]

    def __contains__(self, stay_id: object) -> bool:
        return bool(self._index.get(stay_id))  # type: ignore[arg-type]

    # Optimistic patches

    def is_pending(self, stay_id: str) -> bool:
        return stay_id in self._pending

    def pending_ids(self) -> set[str]:
        return set(self._pending)

    def patch(self, stay_id: str, update: StayUpdate) -> Snapshot:
        """Apply ``update`` to every view holding the stay.

        Raises:
            KeyError: If the stay is not cached
            RuntimeError: If the stay already has a pending patch
        """
        if stay_id in self._pending:
            raise RuntimeError(f"Stay {stay_id} already has a pending patch")
        original = self.get(stay_id)
        if original is None:
            raise KeyError(stay_id)

        snapshot = Snapshot(stay_id=stay_id, original=original, update=update)
        for key in self._index[stay_id]:
            pos = self._positions[key][stay_id]
            prior = self._views[key][pos]
            snapshot.prior[key] = prior
            self._views[key][pos] = update.apply(prior)

        self._pending[stay_id] = snapshot
        self.version += 1
        logger.debug(f"Patched stay {stay_id} in {len(snapshot.prior)} view(s)")
        return snapshot

    def rollback(self, stay_id: str) -> Snapshot | None:
        """Restore every patched view to its pre-patch entry."""
        snapshot = self._pending.pop(stay_id, None)
        if snapshot is None:
            return None

        for key in self._index.get(stay_id, ()):
            pos = self._positions[key][stay_id]
            self._views[key][pos] = snapshot.prior.get(key, snapshot.original)

        self.version += 1
        logger.debug(f"Rolled back stay {stay_id}")
        return snapshot

    def commit(self, stay_id: str, confirmed: Stay | None = None) -> Snapshot | None:
        """Discard the snapshot, optionally replacing entries with the store's record."""
        snapshot = self._pending.pop(stay_id, None)
        if confirmed is not None:
            for key in self._index.get(stay_id, ()):
                self._views[key][self._positions[key][stay_id]] = confirmed
        self.version += 1
        return snapshot

    def _unindex(self, key: str) -> None:
        for stay_id in self._positions.get(key, {}):
            keys = self._index.get(stay_id)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._index[stay_id]
