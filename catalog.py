"""
Read-only product catalog served from a static JSON file.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from schemas import Product

logger = logging.getLogger(__name__)

FEATURED_COUNT = 6


class CatalogReader:
    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> List[Product]:
        # Re-read on every call so catalog edits show up without a restart.
        with self.path.open(encoding="utf-8") as fh:
            return [Product(**p) for p in json.load(fh)]

    def categories(self, products: Optional[List[Product]] = None) -> List[str]:
        seen = []
        for p in products if products is not None else self._load():
            if p.category not in seen:
                seen.append(p.category)
        return seen

    def search(self, category: Optional[str] = None, term: Optional[str] = None) -> dict:
        products = self._load()
        found = products
        if category and category.lower() != "all":
            found = [p for p in found if p.category.lower() == category.lower()]
        if term:
            needle = term.lower()
            found = [
                p for p in found
                if needle in p.name.lower()
                or needle in p.description.lower()
                or any(needle in f.lower() for f in p.features)
            ]
        return {
            "products": [p.model_dump(by_alias=True) for p in found],
            "total": len(found),
            "categories": self.categories(products),
        }

    def get(self, product_id: str) -> Optional[Product]:
        return next((p for p in self._load() if p.id == product_id), None)

    def featured(self, limit: int = FEATURED_COUNT) -> List[Product]:
        return self._load()[:limit]
