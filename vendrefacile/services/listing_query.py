import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from vendrefacile.core import config
from vendrefacile.core.errors import NotFound
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.listing import Category, Listing
from vendrefacile.models.schemas import ListingSearchParams, StatusFilter
from vendrefacile.models.user import User

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"
# OFFSET is bound as a signed 64-bit integer by the database drivers
MAX_OFFSET = 2 ** 63 - 1


def normalize_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """
    Clamp limit to 1..MAX_PAGE_SIZE (non-positive or missing -> default) and
    page to >= 1, capped so the resulting offset still fits in a BIGINT.
    """
    if limit is None or limit <= 0:
        limit = config.DEFAULT_PAGE_SIZE
    limit = min(limit, config.MAX_PAGE_SIZE)
    page = min(max(1, page or 1), MAX_OFFSET // limit + 1)
    return page, limit


def contains_pattern(value: str) -> str:
    """Build a lowercase LIKE pattern matching `value` anywhere, with metacharacters taken literally."""
    escaped = (
        value.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def serialize_listing(listing: Listing, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": listing.id,
        "title": listing.title,
        "description": listing.description,
        "price": listing.price,
        "city": listing.city,
        "latitude": listing.latitude,
        "longitude": listing.longitude,
        "category_id": listing.category_id,
        "owner_id": listing.owner_id,
        "status": listing.status,
        "created_at": listing.created_at,
        "updated_at": listing.updated_at,
    }
    data.update(extra)
    return data


class ListingQueryComposer:
    """
    Turns optional search criteria into a single paginated listing query.

    Each supplied criterion contributes one predicate; predicates are kept as
    an ordered list of SQLAlchemy expressions (values are bound parameters)
    and ANDed together when the query is built, so the list can be inspected
    or applied to any session.
    """

    def __init__(self, params: ListingSearchParams):
        self.params = params
        self.page, self.limit = normalize_pagination(params.page, params.limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def predicates(self) -> List[Any]:
        params = self.params
        conditions = []

        # Visibility: active unless another status (or all) is asked for explicitly
        status = params.status or StatusFilter.active
        if status != StatusFilter.all:
            conditions.append(Listing.status == status.value)

        if params.category_id is not None:
            conditions.append(Listing.category_id == params.category_id)
        if params.city:
            conditions.append(func.lower(Listing.city).like(contains_pattern(params.city), escape=LIKE_ESCAPE))
        if params.price_min is not None:
            conditions.append(Listing.price >= params.price_min)
        if params.price_max is not None:
            conditions.append(Listing.price <= params.price_max)
        if params.q:
            pattern = contains_pattern(params.q)
            conditions.append(or_(
                func.lower(Listing.title).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Listing.description).like(pattern, escape=LIKE_ESCAPE),
            ))

        return conditions

    def build(self, session: Session) -> Query:
        query = (
            session.query(
                Listing,
                User.username.label("seller_name"),
                Category.name.label("category_name"),
            )
            .join(User, User.id == Listing.owner_id)
            .outerjoin(Category, Category.id == Listing.category_id)
        )
        conditions = self.predicates()
        if conditions:
            query = query.filter(*conditions)

        # Newest first; id breaks ties so pages never overlap or skip rows
        return (
            query.order_by(Listing.created_at.desc(), Listing.id.desc())
            .offset(self.offset)
            .limit(self.limit)
        )

    def search(self, storage: StorageGateway) -> List[Dict[str, Any]]:
        rows = self.build(storage.read).all()
        logger.debug(f"Listing search page={self.page} limit={self.limit} returned {len(rows)} rows")
        return [
            serialize_listing(listing, seller_name=seller_name, category_name=category_name)
            for listing, seller_name, category_name in rows
        ]


def get_my_listings(storage: StorageGateway, owner_id: int) -> List[Dict[str, Any]]:
    """All listings owned by the caller, any status, newest first. Reads the primary so fresh writes show up."""
    rows = (
        storage.write.query(Listing, Category.name.label("category_name"))
        .outerjoin(Category, Category.id == Listing.category_id)
        .filter(Listing.owner_id == owner_id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )
    return [serialize_listing(listing, category_name=category_name) for listing, category_name in rows]


def get_listing_detail(storage: StorageGateway, listing_id: int) -> Dict[str, Any]:
    """Single listing with owner and category names, whatever its status."""
    row = (
        storage.read.query(
            Listing,
            User.username.label("seller_name"),
            User.city.label("seller_city"),
            Category.name.label("category_name"),
        )
        .join(User, User.id == Listing.owner_id)
        .outerjoin(Category, Category.id == Listing.category_id)
        .filter(Listing.id == listing_id)
        .first()
    )
    if row is None:
        raise NotFound("Listing not found")

    listing, seller_name, seller_city, category_name = row
    return serialize_listing(
        listing,
        seller_name=seller_name,
        seller_city=seller_city,
        category_name=category_name,
    )
