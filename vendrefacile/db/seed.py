#!/usr/bin/env python3
"""
Create the schema, the base categories and (on an empty database) a small
demo dataset: a seller, a buyer, three listings, a favorite and a
conversation with two messages.

Usage:
    python -m vendrefacile.db.seed
"""
from sqlalchemy.orm import Session

from vendrefacile.core.security import hash_password
from vendrefacile.db.database import SessionLocal, init_db
from vendrefacile.models.conversation import Conversation, Message
from vendrefacile.models.listing import Category, Favorite, Listing
from vendrefacile.models.user import User

BASE_CATEGORIES = [
    "Véhicules", "Immobilier", "Multimédia", "Maison", "Loisirs",
    "Emploi", "Services", "Vêtements", "Animaux", "Divers",
]

DEMO_PASSWORD = "password123"


def seed_categories(db: Session) -> int:
    """Insert missing base categories, return how many were added."""
    existing = {name for (name,) in db.query(Category.name).all()}
    missing = [name for name in BASE_CATEGORIES if name not in existing]
    for name in missing:
        db.add(Category(name=name))
    db.commit()
    return len(missing)


def seed_demo_data(db: Session) -> bool:
    """Insert the demo dataset if there are no users yet. Returns True if it did."""
    if db.query(User).count() > 0:
        return False

    categories = {category.name: category.id for category in db.query(Category).all()}

    seller = User(
        email="seller@vendrefacile.local",
        password_hash=hash_password(DEMO_PASSWORD),
        username="vendeur_demo",
        city="Paris",
    )
    buyer = User(
        email="buyer@vendrefacile.local",
        password_hash=hash_password(DEMO_PASSWORD),
        username="acheteur_demo",
        city="Lyon",
    )
    db.add_all([seller, buyer])
    db.flush()

    phone = Listing(
        title="iPhone 12 128Go",
        description="Très bon état, batterie OK, vendu avec câble.",
        price=350,
        city="Paris",
        category_id=categories.get("Multimédia"),
        owner_id=seller.id,
    )
    bike = Listing(
        title="Vélo de ville",
        description="Vélo confortable, révisé récemment.",
        price=120,
        city="Paris",
        category_id=categories.get("Véhicules"),
        owner_id=seller.id,
    )
    table = Listing(
        title="Table basse en bois",
        description="Style scandinave, quelques traces d'usage.",
        price=60,
        city="Paris",
        category_id=categories.get("Maison"),
        owner_id=seller.id,
        status="sold",
    )
    db.add_all([phone, bike, table])
    db.flush()

    db.add(Favorite(user_id=buyer.id, listing_id=phone.id))

    conversation = Conversation(listing_id=phone.id, buyer_id=buyer.id, seller_id=seller.id)
    db.add(conversation)
    db.flush()

    db.add_all([
        Message(conversation_id=conversation.id, sender_id=buyer.id, content="Bonjour, toujours disponible ?"),
        Message(
            conversation_id=conversation.id,
            sender_id=seller.id,
            content="Oui, disponible. Vous souhaitez venir le voir quand ?",
        ),
    ])
    db.commit()
    return True


def main():
    init_db()
    db = SessionLocal()
    try:
        added = seed_categories(db)
        print(f"Categories added: {added}")
        if seed_demo_data(db):
            print(f"Demo data created (password for both accounts: {DEMO_PASSWORD})")
        else:
            print("Users already present, skipping demo data")
    finally:
        db.close()


if __name__ == "__main__":
    main()
