import logging
from typing import Tuple

from sqlalchemy.exc import IntegrityError

from vendrefacile.core.errors import Conflict, NotFound, Unauthorized
from vendrefacile.core.security import create_access_token, hash_password, verify_password
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.schemas import UserCreate, UserUpdate
from vendrefacile.models.user import User

logger = logging.getLogger(__name__)


class AccountService:
    """Registration, login and profile management."""

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    def register(self, data: UserCreate) -> Tuple[User, str]:
        db = self.storage.write
        user = User(
            email=data.email,
            password_hash=hash_password(data.password),
            username=data.username,
            phone=data.phone or None,
            city=data.city or None,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("Email or username already in use")

        db.refresh(user)
        logger.info(f"Registered user {user.id} ({user.username})")
        return user, create_access_token(user.id, user.role)

    def login(self, email: str, password: str) -> Tuple[User, str]:
        # Read from the primary so an account registered a moment ago can log in
        user = self.storage.write.query(User).filter(User.email == email).first()
        if user is None or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        return user, create_access_token(user.id, user.role)

    def get_profile(self, user_id: int) -> User:
        user = self.storage.read.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")
        return user

    def update_profile(self, user_id: int, data: UserUpdate) -> User:
        db = self.storage.write
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFound("User not found")

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(user, field, value)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("Username already in use")

        db.refresh(user)
        return user
