from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass

from cycle_count.errors import CountError, CountValidationError
from cycle_count.services.item_master_provider import ItemMasterProvider, ItemRecord
from cycle_count.services.sort_utils import item_sort_key

logger = logging.getLogger(__name__)

FILTER_FIELDS = (
    ('categoryIds', 'category_ids'),
    ('supplierIds', 'supplier_ids'),
    ('storageLocationIds', 'storage_location_ids'),
    ('tags', 'tags'),
)


@dataclass(frozen=True)
class AllItemsScope:
    def to_dict(self) -> dict:
        return {'all': True}


@dataclass(frozen=True)
class FilteredScope:
    category_ids: tuple[str, ...] = ()
    supplier_ids: tuple[str, ...] = ()
    storage_location_ids: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    include_inactive: bool = False

    def to_dict(self) -> dict:
        filters: dict = {}
        for wire_name, attr in FILTER_FIELDS:
            values = getattr(self, attr)
            if values:
                filters[wire_name] = list(values)
        if self.include_inactive:
            filters['includeInactive'] = True
        return {'filters': filters}


@dataclass(frozen=True)
class ImportScope:
    import_ref: str

    def to_dict(self) -> dict:
        return {'importRef': self.import_ref}


CountScope = AllItemsScope | FilteredScope | ImportScope


def _scope_error(message: str, field: str = 'scope', code: str = 'INVALID_SCOPE', **details) -> CountError:
    return CountError(code=code, message=message, field=field, details=details)


def _clean_id_list(raw, *, field: str, errors: list[CountError]) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        errors.append(_scope_error('Filter values must be a list', field=field))
        return ()
    cleaned: list[str] = []
    for value in raw:
        if not isinstance(value, str):
            errors.append(_scope_error('Filter values must be strings', field=field))
            return ()
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return tuple(cleaned)


def parse_scope(raw) -> CountScope:
    """Turn the wire form ({all} | {filters} | {importRef}) into exactly one scope variant."""
    if not isinstance(raw, dict):
        raise CountValidationError([_scope_error('Must specify count scope: all items, filters, or import')])

    import_ref = raw.get('importRef')
    if isinstance(import_ref, str):
        import_ref = import_ref.strip()
    filters = raw.get('filters')
    present = [
        name
        for name, value in (('all', raw.get('all') is True), ('filters', filters is not None), ('importRef', bool(import_ref)))
        if value
    ]

    if not present:
        raise CountValidationError([_scope_error('Must specify count scope: all items, filters, or import')])
    if len(present) > 1:
        raise CountValidationError(
            [_scope_error('Must specify only one count scope: all items, filters, or import', present=present)]
        )

    if present[0] == 'all':
        return AllItemsScope()

    if present[0] == 'importRef':
        if not isinstance(import_ref, str):
            raise CountValidationError([_scope_error('Import reference must be a string', field='scope.importRef')])
        return ImportScope(import_ref=import_ref)

    if not isinstance(filters, dict):
        raise CountValidationError([_scope_error('Filters must be an object', field='scope.filters')])

    errors: list[CountError] = []
    values = {
        attr: _clean_id_list(filters.get(wire_name), field=f'scope.filters.{wire_name}', errors=errors)
        for wire_name, attr in FILTER_FIELDS
    }
    include_inactive = filters.get('includeInactive', False)
    if not isinstance(include_inactive, bool):
        errors.append(_scope_error('includeInactive must be a boolean', field='scope.filters.includeInactive'))
        include_inactive = False
    if errors:
        raise CountValidationError(errors)

    scope = FilteredScope(include_inactive=include_inactive, **values)
    if not any(values.values()) and not include_inactive:
        raise CountValidationError(
            [_scope_error('At least one filter must be specified when using filtered scope', field='scope.filters')]
        )
    return scope


def scope_fingerprint(scope: CountScope) -> str:
    canonical = scope.to_dict()
    if isinstance(scope, FilteredScope):
        canonical = {'filters': {key: sorted(value) if isinstance(value, list) else value for key, value in canonical['filters'].items()}}
    encoded = json.dumps(canonical, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(encoded.encode('utf-8')).hexdigest()


def _matches_filters(item: ItemRecord, scope: FilteredScope) -> bool:
    if not item.is_active and not scope.include_inactive:
        return False
    if scope.category_ids and item.category_id not in scope.category_ids:
        return False
    if scope.supplier_ids and item.supplier_id not in scope.supplier_ids:
        return False
    if scope.storage_location_ids and item.storage_location_id not in scope.storage_location_ids:
        return False
    if scope.tags and not set(scope.tags).intersection(item.tags):
        return False
    return True


def _sorted(items: list[ItemRecord]) -> list[ItemRecord]:
    return sorted(items, key=lambda item: item_sort_key(category_name=item.category_name, name=item.name, sku=item.sku))


def _resolve_import(provider: ItemMasterProvider, *, catalog: list[ItemRecord], scope: ImportScope) -> list[ItemRecord]:
    item_ids = provider.list_import_item_ids(import_ref=scope.import_ref)
    if item_ids is None:
        raise CountValidationError(
            [_scope_error(f'Unknown import reference: {scope.import_ref}', field='scope.importRef', code='UNKNOWN_IMPORT')]
        )

    by_id = {item.item_id: item for item in catalog}
    ordered: list[ItemRecord] = []
    seen: set[str] = set()
    unknown: list[str] = []
    for item_id in item_ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        item = by_id.get(item_id)
        if item is None:
            unknown.append(item_id)
            continue
        ordered.append(item)

    if unknown:
        raise CountValidationError(
            [
                _scope_error(
                    f'Import {scope.import_ref} references unknown items',
                    field='scope.importRef',
                    code='UNKNOWN_ITEMS',
                    unknownItemIds=unknown,
                )
            ]
        )
    return ordered


def resolve_scope(
    provider: ItemMasterProvider,
    *,
    branch_id: str,
    scope: CountScope,
    max_items: int,
) -> list[ItemRecord]:
    catalog = provider.list_items(branch_id=branch_id)

    if isinstance(scope, AllItemsScope):
        items = _sorted([item for item in catalog if item.is_active])
    elif isinstance(scope, FilteredScope):
        items = _sorted([item for item in catalog if _matches_filters(item, scope)])
    elif isinstance(scope, ImportScope):
        items = _resolve_import(provider, catalog=catalog, scope=scope)
    else:
        raise TypeError(f'Unsupported count scope: {scope!r}')

    deduped: list[ItemRecord] = []
    seen: set[str] = set()
    for item in items:
        if item.item_id not in seen:
            seen.add(item.item_id)
            deduped.append(item)

    if not deduped:
        raise CountValidationError([_scope_error('No items match the specified scope', code='NO_ITEMS')])
    if len(deduped) > max_items:
        raise CountValidationError(
            [
                _scope_error(
                    f'Count scope includes {len(deduped)} items. Maximum allowed: {max_items}',
                    code='TOO_MANY_ITEMS',
                    itemCount=len(deduped),
                    maxItems=max_items,
                )
            ]
        )

    logger.debug('Resolved %s items for branch %s scope %s', len(deduped), branch_id, scope.to_dict())
    return deduped
