"""Build a RequirementCatalog from an Excel requirement matrix.

Expected sheet layout (first row is a header):

    Category | Sub-category | Document | Description | Category description

One row per required document; rows keep their order within each
(category, sub-category) pair.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import Path
from typing import Optional

from openpyxl import load_workbook

from loanbot.catalog.requirements import (
    DEFAULT_CATEGORIES,
    DEFAULT_DESCRIPTIONS,
    SALARIED,
    SELF_EMPLOYED,
    SUBCATEGORY_RULES,
    RequirementCatalog,
)
from loanbot.models import CatalogOption

logger = logging.getLogger(__name__)

_SUBCATEGORY_MAP: dict[str, str] = {
    "salaried": SALARIED,
    "self-employed": SELF_EMPLOYED,
    "self employed": SELF_EMPLOYED,
    "self_employed": SELF_EMPLOYED,
}


def _category_key(raw: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", raw.strip().lower()).strip("_")


def _resolve_subcategory(raw: str) -> str:
    normalized = raw.strip().lower()
    if normalized in _SUBCATEGORY_MAP:
        return _SUBCATEGORY_MAP[normalized]
    for keywords, key in SUBCATEGORY_RULES:
        if any(word in normalized for word in keywords):
            return key
    raise ValueError(f"Unknown employment type: {raw!r}")


def parse_catalog(catalog_path: Path | str) -> RequirementCatalog:
    """Read the Excel matrix and return an immutable catalog."""
    wb = load_workbook(str(catalog_path), read_only=True, data_only=True)
    ws = wb.active

    defaults = {opt.key: opt for opt in DEFAULT_CATEGORIES}
    categories: dict[str, CatalogOption] = {}
    requirements: dict[str, dict[str, list[str]]] = defaultdict(lambda: defaultdict(list))
    descriptions = dict(DEFAULT_DESCRIPTIONS)

    for row in ws.iter_rows(min_row=2, values_only=True):
        if not row or len(row) < 3:
            continue
        cat_raw, sub_raw, document = row[:3]
        description = row[3] if len(row) > 3 else None
        cat_description = row[4] if len(row) > 4 else None

        if not cat_raw or not sub_raw or not document:
            continue

        key = _category_key(str(cat_raw))
        if key not in categories:
            fallback = defaults.get(key)
            categories[key] = CatalogOption(
                key=key,
                display_name=str(cat_raw).strip(),
                description=str(cat_description or "").strip()
                or (fallback.description if fallback else ""),
            )

        name = str(document).strip()
        items = requirements[key][_resolve_subcategory(str(sub_raw))]
        if name not in items:
            items.append(name)
        if description:
            descriptions[name] = str(description).strip()

    wb.close()
    logger.info("Parsed %d categories from %s", len(categories), catalog_path)
    return RequirementCatalog(
        categories=list(categories.values()),
        requirements=requirements,
        descriptions=descriptions,
    )


def load_catalog(catalog_path: Optional[Path | str] = None) -> RequirementCatalog:
    """Return the workbook catalog when *catalog_path* exists, else the built-in one."""
    if catalog_path and Path(catalog_path).is_file():
        return parse_catalog(catalog_path)
    if catalog_path:
        logger.warning("Catalog file %s not found, using built-in matrix", catalog_path)
    return RequirementCatalog()
