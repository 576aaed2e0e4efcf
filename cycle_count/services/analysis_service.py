from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from cycle_count.models import CountItem
from cycle_count.services.count_service import get_count_session, list_count_items
from cycle_count.services.variance import ZERO, round2

LARGEST_VARIANCE_LIMIT = 10
UNCATEGORIZED = 'Uncategorized'


def _distribution(items: list[CountItem]) -> dict:
    total = sum((Decimal(item.variance_value) for item in items), ZERO)
    return {
        'count': len(items),
        'totalValue': round2(abs(total)),
        'averageValue': round2(abs(total) / len(items)) if items else ZERO,
    }


def empty_variance_analysis() -> dict:
    return {
        'totalVarianceValue': ZERO,
        'totalVarianceQty': ZERO,
        'averageVariancePercentage': ZERO,
        'itemsWithVariance': 0,
        'positiveVariances': _distribution([]),
        'negativeVariances': _distribution([]),
        'largestVariances': [],
        'categoryVariances': [],
    }


def variance_analysis(items: list[CountItem]) -> dict:
    counted = [item for item in items if item.counted_qty is not None]
    if not counted:
        return empty_variance_analysis()

    by_category: dict[str, dict] = {}
    for item in counted:
        name = item.category_name or UNCATEGORIZED
        bucket = by_category.setdefault(name, {'categoryName': name, 'varianceValue': ZERO, 'itemCount': 0})
        bucket['varianceValue'] += Decimal(item.variance_value)
        bucket['itemCount'] += 1
    categories = sorted(by_category.values(), key=lambda row: (-abs(row['varianceValue']), row['categoryName']))
    for row in categories:
        row['varianceValue'] = round2(row['varianceValue'])

    largest = sorted(counted, key=lambda item: abs(Decimal(item.variance_value)), reverse=True)[:LARGEST_VARIANCE_LIMIT]
    return {
        'totalVarianceValue': round2(sum((Decimal(item.variance_value) for item in counted), ZERO)),
        'totalVarianceQty': round2(sum((Decimal(item.variance_qty) for item in counted), ZERO)),
        'averageVariancePercentage': round2(
            sum((abs(Decimal(item.variance_percentage)) for item in counted), ZERO) / len(counted)
        ),
        'itemsWithVariance': sum(1 for item in counted if item.variance_qty != 0),
        'positiveVariances': _distribution([item for item in counted if item.variance_value > 0]),
        'negativeVariances': _distribution([item for item in counted if item.variance_value < 0]),
        'largestVariances': [
            {
                'itemId': item.item_id,
                'sku': item.sku,
                'name': item.name,
                'varianceQty': item.variance_qty,
                'varianceValue': item.variance_value,
                'variancePercentage': item.variance_percentage,
            }
            for item in largest
        ],
        'categoryVariances': categories,
    }


def get_variance_analysis(db: Session, *, count_id: str) -> dict:
    get_count_session(db, count_id=count_id)
    return variance_analysis(list_count_items(db, count_id=count_id))
