from __future__ import annotations


def normalize_sort_text(value: str | None) -> str:
    return (value or '').strip().lower()


def item_sort_key(*, category_name: str | None, name: str | None, sku: str | None) -> tuple[str, str, str]:
    return (normalize_sort_text(category_name), normalize_sort_text(name), normalize_sort_text(sku))
