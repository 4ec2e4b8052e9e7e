from fastapi import APIRouter, Depends, status
from typing import List

from vendrefacile.core.security import CallerIdentity, get_current_user
from vendrefacile.db.database import get_storage
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.schemas import DeletedResponse, FavoriteListingResponse, FavoriteResponse
from vendrefacile.services.favorite_service import FavoriteService

router = APIRouter(
    prefix="/favorites",
    tags=["favorites"]
)


@router.get("", response_model=List[FavoriteListingResponse])
def list_favorites(
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    return FavoriteService(storage).list_favorites(caller.id)


@router.post("/{listing_id}", response_model=FavoriteResponse, status_code=status.HTTP_201_CREATED)
def add_favorite(
    listing_id: int,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Add a listing to the caller's favorites. 409 if it is already there."""
    return FavoriteService(storage).add_favorite(caller.id, listing_id)


@router.delete("/{listing_id}", response_model=DeletedResponse)
def remove_favorite(
    listing_id: int,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    FavoriteService(storage).remove_favorite(caller.id, listing_id)
    return {"deleted": True}
