from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from vendrefacile.core.security import CallerIdentity, get_current_user
from vendrefacile.db.database import get_storage
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.schemas import (
    DeletedResponse,
    ListingCreate,
    ListingDetailResponse,
    ListingResponse,
    ListingSearchParams,
    ListingSearchResponse,
    ListingUpdate,
    StatusFilter,
)
from vendrefacile.services.listing_query import ListingQueryComposer, get_listing_detail, get_my_listings
from vendrefacile.services.listing_service import ListingService

router = APIRouter(
    prefix="/listings",
    tags=["listings"]
)


@router.get("", response_model=List[ListingSearchResponse])
def search_listings(
    category_id: Optional[int] = None,
    city: Optional[str] = None,
    price_min: Optional[float] = Query(None, allow_inf_nan=False),
    price_max: Optional[float] = Query(None, allow_inf_nan=False),
    q: Optional[str] = None,
    status: Optional[StatusFilter] = Query(None, description="active (default), sold, archived or all"),
    page: int = 1,
    limit: Optional[int] = None,
    storage: StorageGateway = Depends(get_storage),
):
    """
    Search listings.

    Every filter is optional and they combine with AND. Without `status`
    only active listings are returned; `status=all` returns every status.
    Results are newest first.
    """
    params = ListingSearchParams(
        category_id=category_id,
        city=city,
        price_min=price_min,
        price_max=price_max,
        q=q,
        status=status,
        page=page,
        limit=limit,
    )
    return ListingQueryComposer(params).search(storage)


@router.get("/mine", response_model=List[ListingResponse])
def my_listings(
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Get all listings of the caller, whatever their status."""
    return get_my_listings(storage, caller.id)


@router.get("/{listing_id}", response_model=ListingDetailResponse)
def get_listing(listing_id: int, storage: StorageGateway = Depends(get_storage)):
    """Get a specific listing by ID, including sold and archived ones."""
    return get_listing_detail(storage, listing_id)


@router.post("", response_model=ListingResponse, status_code=201)
def create_listing(
    listing_data: ListingCreate,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    return ListingService(storage).create_listing(listing_data, caller.id)


@router.put("/{listing_id}", response_model=ListingResponse)
def update_listing(
    listing_id: int,
    listing_data: ListingUpdate,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Update the provided fields of a listing owned by the caller."""
    return ListingService(storage).update_listing(listing_id, listing_data, caller.id)


@router.delete("/{listing_id}", response_model=DeletedResponse)
def delete_listing(
    listing_id: int,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    ListingService(storage).delete_listing(listing_id, caller.id)
    return {"deleted": True}
