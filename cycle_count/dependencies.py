from fastapi import Request

from cycle_count.services.item_master_provider import ItemMasterProvider
from cycle_count.services.provider_factory import get_item_master_provider


def get_item_master() -> ItemMasterProvider:
    return get_item_master_provider()


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None
