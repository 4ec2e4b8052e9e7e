import logging
from typing import Any, Dict, Optional

from vendrefacile.core.errors import Forbidden, InvalidInput, NotFound
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.listing import Category, Listing
from vendrefacile.models.schemas import ListingCreate, ListingUpdate
from vendrefacile.services.listing_query import serialize_listing

logger = logging.getLogger(__name__)


class ListingService:
    """Owner-side listing mutations. All of them go to the primary."""

    def __init__(self, storage: StorageGateway):
        self.db = storage.write

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        if self.db.query(Category.id).filter(Category.id == category_id).scalar() is None:
            raise InvalidInput("Unknown category")

    def create_listing(self, data: ListingCreate, owner_id: int) -> Dict[str, Any]:
        self._check_category(data.category_id)
        listing = Listing(**data.model_dump(), owner_id=owner_id)
        self.db.add(listing)
        self.db.commit()
        self.db.refresh(listing)
        logger.info(f"User {owner_id} created listing {listing.id}")
        return serialize_listing(listing)

    def _owned_listing(self, listing_id: int, caller_id: int) -> Listing:
        listing = self.db.query(Listing).filter(Listing.id == listing_id).first()
        if listing is None:
            raise NotFound("Listing not found")
        if listing.owner_id != caller_id:
            raise Forbidden("Only the owner can modify this listing")
        return listing

    def update_listing(self, listing_id: int, data: ListingUpdate, caller_id: int) -> Dict[str, Any]:
        listing = self._owned_listing(listing_id, caller_id)
        self._check_category(data.category_id)

        # Update only the provided fields
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if field == "status":
                value = value.value
            setattr(listing, field, value)

        self.db.commit()
        self.db.refresh(listing)
        logger.info(f"User {caller_id} updated listing {listing_id}")
        return serialize_listing(listing)

    def delete_listing(self, listing_id: int, caller_id: int) -> None:
        listing = self._owned_listing(listing_id, caller_id)
        self.db.delete(listing)
        self.db.commit()
        logger.info(f"User {caller_id} deleted listing {listing_id}")
