from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from cycle_count.auth import (
    SUPERVISOR_ROLES,
    Principal,
    assert_branch_scope,
    branch_restriction,
    get_current_principal,
    require_role,
)
from cycle_count.config import settings
from cycle_count.db import get_db
from cycle_count.dependencies import get_client_ip, get_item_master
from cycle_count.models import CountSession
from cycle_count.services.analysis_service import get_variance_analysis
from cycle_count.services.audit_service import log_audit
from cycle_count.services.count_service import (
    ItemQuery,
    UpdateEntry,
    cancel_count,
    create_count_session,
    get_count_session,
    list_count_items,
    submit_count,
    update_count_items,
    validate_submission,
)
from cycle_count.services.export_service import ExportOptions, export_count
from cycle_count.services.item_master_provider import ItemMasterProvider
from cycle_count.services.query_service import build_list_query, get_count_detail, list_counts

router = APIRouter(prefix='/api/inventory/counts', tags=['counts'])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateCountRequest(CamelModel):
    branch_id: str | None = None
    scope: Any = None
    notes: str | None = None
    estimated_duration_minutes: Any = None


class CountItemUpdate(CamelModel):
    # Loosely typed so a bad entry is rejected per item instead of failing the batch.
    item_id: Any = None
    counted_qty: Any = None
    notes: Any = None


class UpdateCountItemsRequest(CamelModel):
    updates: list[CountItemUpdate] = Field(default_factory=list)


class SubmitCountRequest(CamelModel):
    confirmation: bool = False
    submission_notes: str | None = None
    variance_threshold: float | None = Field(default=None, ge=0)


class CancelCountRequest(CamelModel):
    reason: str = ''
    notes: str | None = None


def _scoped_session(db: Session, principal: Principal, count_id: str) -> CountSession:
    count_session = get_count_session(db, count_id=count_id)
    assert_branch_scope(principal, count_session.branch_id)
    return count_session


@router.get('')
def list_count_sessions(
    branch_id: str | None = Query(None, alias='branchId'),
    statuses: list[str] | None = Query(None, alias='status'),
    created_by: str | None = Query(None, alias='createdBy'),
    date_from: datetime | None = Query(None, alias='dateFrom'),
    date_to: datetime | None = Query(None, alias='dateTo'),
    search: str | None = None,
    page: int | None = None,
    page_size: int | None = Query(None, alias='pageSize'),
    sort_by: str | None = Query(None, alias='sortBy'),
    sort_order: str | None = Query(None, alias='sortOrder'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    pinned_branch = branch_restriction(principal)
    if pinned_branch is not None:
        if branch_id and branch_id != pinned_branch:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        branch_id = pinned_branch

    query = build_list_query(
        branch_id=branch_id,
        statuses=statuses,
        created_by=created_by,
        date_from=date_from,
        date_to=date_to,
        search=search,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return list_counts(db, query=query)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_count(
    payload: CreateCountRequest,
    request: Request,
    principal: Principal = Depends(require_role(*SUPERVISOR_ROLES)),
    db: Session = Depends(get_db),
    item_master: ItemMasterProvider = Depends(get_item_master),
):
    count_session, item_count = create_count_session(
        db,
        actor=principal.username,
        branch_id=payload.branch_id,
        scope=payload.scope,
        item_master=item_master,
        notes=payload.notes,
        estimated_duration_minutes=payload.estimated_duration_minutes,
    )
    log_audit(
        db,
        actor=principal.username,
        action='COUNT_CREATED',
        count_id=count_session.id,
        ip=get_client_ip(request),
        metadata={'branch_id': count_session.branch_id, 'item_count': item_count},
    )
    db.commit()
    return {'countId': count_session.id, 'itemCount': item_count}


@router.get('/config')
def count_config(principal: Principal = Depends(get_current_principal)):
    return {
        'defaultVarianceThreshold': settings.variance_threshold_percent,
        'autosaveIntervalSeconds': settings.autosave_interval_seconds,
        'maxItemsPerCount': settings.max_items_per_count,
        'defaultPageSize': settings.default_page_size,
        'maxPageSize': settings.max_page_size,
        'varianceSeverity': {
            'lowPercent': settings.low_variance_percent,
            'mediumPercent': settings.medium_variance_percent,
        },
        'valueThresholds': {
            'autoApprove': settings.auto_approve_variance_value,
            'managerReview': settings.manager_review_variance_value,
        },
    }


@router.get('/{count_id}')
def get_count(
    count_id: str,
    search: str | None = None,
    category_names: list[str] | None = Query(None, alias='categoryNames'),
    show_counted_only: bool = Query(False, alias='showCountedOnly'),
    show_not_counted_only: bool = Query(False, alias='showNotCountedOnly'),
    show_variance_only: bool = Query(False, alias='showVarianceOnly'),
    has_notes: bool | None = Query(None, alias='hasNotes'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    item_query = ItemQuery(
        search=search,
        category_names=tuple(category_names or ()),
        show_counted_only=show_counted_only,
        show_not_counted_only=show_not_counted_only,
        show_variance_only=show_variance_only,
        has_notes=has_notes,
    )
    return get_count_detail(db, count_id=count_id, item_query=item_query)


@router.put('/{count_id}/items')
def update_items(
    count_id: str,
    payload: UpdateCountItemsRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    result = update_count_items(
        db,
        count_id=count_id,
        actor=principal.username,
        updates=[
            UpdateEntry(item_id=entry.item_id, counted_qty=entry.counted_qty, notes=entry.notes)
            for entry in payload.updates
        ],
    )
    log_audit(
        db,
        actor=principal.username,
        action='COUNT_ITEMS_UPDATED',
        count_id=count_id,
        ip=get_client_ip(request),
        metadata={'accepted': result.updated_count, 'rejected': len(result.rejected)},
    )
    db.commit()
    return {
        'success': result.success,
        'updatedCount': result.updated_count,
        'status': result.status.value,
        'totals': result.totals.to_dict(),
        'results': [item_result.to_dict() for item_result in result.results],
    }


@router.post('/{count_id}/submit')
def submit(
    count_id: str,
    payload: SubmitCountRequest,
    request: Request,
    principal: Principal = Depends(require_role(*SUPERVISOR_ROLES)),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    result = submit_count(
        db,
        count_id=count_id,
        actor=principal.username,
        confirmation=payload.confirmation,
        submission_notes=payload.submission_notes,
        variance_threshold=payload.variance_threshold,
    )
    log_audit(
        db,
        actor=principal.username,
        action='COUNT_SUBMITTED',
        count_id=count_id,
        ip=get_client_ip(request),
        metadata={
            'adjustment_batch_id': result.adjustment_batch_id,
            'adjustments': result.summary['totalAdjustments'],
        },
    )
    db.commit()
    return {
        'success': True,
        'adjustmentBatchId': result.adjustment_batch_id,
        'adjustments': result.adjustments,
        'summary': result.summary,
    }


@router.post('/{count_id}/cancel')
def cancel(
    count_id: str,
    payload: CancelCountRequest,
    request: Request,
    principal: Principal = Depends(require_role(*SUPERVISOR_ROLES)),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    cancel_count(db, count_id=count_id, actor=principal.username, reason=payload.reason, notes=payload.notes)
    log_audit(
        db,
        actor=principal.username,
        action='COUNT_CANCELLED',
        count_id=count_id,
        ip=get_client_ip(request),
        metadata={'reason': payload.reason.strip()},
    )
    db.commit()
    return {'success': True}


@router.get('/{count_id}/export')
def export(
    count_id: str,
    request: Request,
    export_format: str = Query('csv', alias='format'),
    include_snapshots: bool = Query(False, alias='includeSnapshots'),
    include_notes: bool = Query(True, alias='includeNotes'),
    include_audit_trail: bool = Query(False, alias='includeAuditTrail'),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    exported = export_count(
        db,
        count_id=count_id,
        options=ExportOptions(
            format=export_format.strip().lower(),
            include_snapshots=include_snapshots,
            include_notes=include_notes,
            include_audit_trail=include_audit_trail,
        ),
    )
    log_audit(
        db,
        actor=principal.username,
        action='COUNT_EXPORTED',
        count_id=count_id,
        ip=get_client_ip(request),
        metadata={'format': export_format, 'rows': exported.row_count},
    )
    db.commit()
    return StreamingResponse(
        iter([exported.content]),
        media_type=exported.media_type,
        headers={'Content-Disposition': f'attachment; filename={exported.filename}'},
    )


@router.get('/{count_id}/variance-analysis')
def variance_analysis(
    count_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_session(db, principal, count_id)
    return get_variance_analysis(db, count_id=count_id)


@router.get('/{count_id}/submission-check')
def submission_check(
    count_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    count_session = _scoped_session(db, principal, count_id)
    return validate_submission(count_session, list_count_items(db, count_id=count_id))
