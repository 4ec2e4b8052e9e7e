import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError

from vendrefacile.core.errors import Conflict, NotFound, StorageError
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.listing import Favorite, Listing

logger = logging.getLogger(__name__)


class FavoriteService:
    def __init__(self, storage: StorageGateway):
        self.storage = storage

    def list_favorites(self, user_id: int) -> List[Dict[str, Any]]:
        rows = (
            self.storage.read.query(Favorite, Listing)
            .join(Listing, Listing.id == Favorite.listing_id)
            .filter(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .all()
        )
        return [
            {
                "id": favorite.id,
                "created_at": favorite.created_at,
                "listing_id": listing.id,
                "title": listing.title,
                "price": listing.price,
                "city": listing.city,
            }
            for favorite, listing in rows
        ]

    def add_favorite(self, user_id: int, listing_id: int) -> Favorite:
        """
        Favorite a listing.

        Unlike conversations, a second favorite on the same listing is
        reported back to the caller instead of being resolved silently.
        """
        db = self.storage.write
        if db.query(Listing.id).filter(Listing.id == listing_id).scalar() is None:
            raise NotFound("Listing not found")

        favorite = Favorite(user_id=user_id, listing_id=listing_id)
        db.add(favorite)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            already_saved = (
                db.query(Favorite.id)
                .filter(Favorite.user_id == user_id, Favorite.listing_id == listing_id)
                .scalar()
            )
            if already_saved is None:
                # Listing or user vanished between the check and the insert
                logger.error(f"Favorite insert failed for user {user_id}, listing {listing_id}: {str(e)}")
                raise StorageError("Could not save favorite")
            logger.info(f"User {user_id} already has listing {listing_id} in favorites")
            raise Conflict("Listing already in favorites")

        db.refresh(favorite)
        return favorite

    def remove_favorite(self, user_id: int, listing_id: int) -> None:
        db = self.storage.write
        db.query(Favorite).filter(
            Favorite.user_id == user_id,
            Favorite.listing_id == listing_id,
        ).delete(synchronize_session=False)
        db.commit()
