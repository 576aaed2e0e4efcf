from __future__ import annotations

from dataclasses import asdict, dataclass
from dataclasses import field as dataclass_field
from typing import Any


@dataclass(frozen=True)
class CountError:
    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] = dataclass_field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class CountValidationError(ValueError):
    def __init__(self, errors: list[CountError]):
        self.errors = list(errors)
        super().__init__(f'Count validation failed: {", ".join(e.message for e in self.errors)}')

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors if e.field]


class CountConcurrencyError(Exception):
    def __init__(self, conflicting_count_id: str):
        self.conflicting_count_id = conflicting_count_id
        super().__init__('Another count session is already active for this scope')


class CountSubmissionError(ValueError):
    def __init__(self, message: str, items: list | None = None, errors: list[CountError] | None = None):
        self.items = list(items or [])
        self.errors = list(errors or [])
        super().__init__(message)


class CountStateError(Exception):
    def __init__(self, count_id: str, status: str, operation: str):
        self.count_id = count_id
        self.status = status
        self.operation = operation
        super().__init__(f'Cannot {operation} count {count_id} in {status} status')


class CountNotFoundError(LookupError):
    def __init__(self, count_id: str, item_id: str | None = None):
        self.count_id = count_id
        self.item_id = item_id
        if item_id is None:
            message = f'Count session {count_id} not found'
        else:
            message = f'Item {item_id} not found in count session {count_id}'
        super().__init__(message)
