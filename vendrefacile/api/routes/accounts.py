from fastapi import APIRouter, Depends, status
from typing import List

from vendrefacile.core.security import CallerIdentity, get_current_user
from vendrefacile.db.database import get_storage
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.listing import Category
from vendrefacile.models.schemas import (
    AuthResponse,
    CategoryResponse,
    ProfileResponse,
    UserCreate,
    UserLogin,
    UserUpdate,
)
from vendrefacile.services.account_service import AccountService

router = APIRouter(tags=["accounts"])


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, storage: StorageGateway = Depends(get_storage)):
    """Create an account and return it with a bearer token."""
    user, token = AccountService(storage).register(user_data)
    return {"user": user, "token": token}


@router.post("/auth/login", response_model=AuthResponse)
def login(credentials: UserLogin, storage: StorageGateway = Depends(get_storage)):
    user, token = AccountService(storage).login(credentials.email, credentials.password)
    return {"user": user, "token": token}


@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    return AccountService(storage).get_profile(caller.id)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    profile_data: UserUpdate,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Update username, phone or city of the caller. Omitted fields are kept."""
    return AccountService(storage).update_profile(caller.id, profile_data)


@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(storage: StorageGateway = Depends(get_storage)):
    return storage.read.query(Category).order_by(Category.name).all()
