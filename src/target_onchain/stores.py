"""Storefront directory backed by a JSON file of Slice stores."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

__all__ = ["StoreDirectory"]

logger = logging.getLogger(__name__)


class StoreDirectory:
    """Read-only list of storefronts, filterable by creator and name."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> list[dict]:
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path} must contain a JSON list of stores")
        return data

    def search(self, creator: Optional[str] = None, search: Optional[str] = None) -> list[dict]:
        """Stores created by ``creator`` (exact, case-insensitive) whose
        name contains ``search`` (case-insensitive)."""
        stores = self.load()
        if creator:
            creator = creator.lower()
            stores = [
                s for s in stores
                if s.get("creatorAddress") and s["creatorAddress"].lower() == creator
            ]
        if search:
            needle = search.lower()
            stores = [s for s in stores if needle in (s.get("name") or "").lower()]
        logger.debug("Store search", extra={"creator": creator, "search": search, "count": len(stores)})
        return stores
