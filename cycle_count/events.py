from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class CountCreated:
    count_id: str
    branch_id: str
    scope: dict
    item_count: int
    created_by: str

    event_type = 'inventory.count.created'

    def payload(self) -> dict:
        return {
            'countId': self.count_id,
            'branchId': self.branch_id,
            'scope': self.scope,
            'itemCount': self.item_count,
            'createdBy': self.created_by,
        }


@dataclass(frozen=True)
class CountItemsUpdated:
    count_id: str
    updated_by: str
    items_updated: list[dict] = field(default_factory=list)

    event_type = 'inventory.count.updated'

    def payload(self) -> dict:
        return {'countId': self.count_id, 'itemsUpdated': self.items_updated, 'updatedBy': self.updated_by}


@dataclass(frozen=True)
class CountSubmitted:
    count_id: str
    branch_id: str
    adjustment_batch_id: str
    total_variance_value: Decimal
    adjustment_count: int
    submitted_by: str

    event_type = 'inventory.count.submitted'

    def payload(self) -> dict:
        return {
            'countId': self.count_id,
            'branchId': self.branch_id,
            'adjustmentBatchId': self.adjustment_batch_id,
            'totalVarianceValue': str(self.total_variance_value),
            'adjustmentCount': self.adjustment_count,
            'submittedBy': self.submitted_by,
        }


@dataclass(frozen=True)
class CountCancelled:
    count_id: str
    branch_id: str
    reason: str
    cancelled_by: str

    event_type = 'inventory.count.cancelled'

    def payload(self) -> dict:
        return {
            'countId': self.count_id,
            'branchId': self.branch_id,
            'reason': self.reason,
            'cancelledBy': self.cancelled_by,
        }


CountEventPayload = CountCreated | CountItemsUpdated | CountSubmitted | CountCancelled
