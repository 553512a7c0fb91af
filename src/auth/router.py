from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import List
from src.database import get_db
from src.auth.schemas import StaffUser, StaffUserCreate, StaffUserUpdate, StaffUserProfile, LoginRequest, AuthResponse
from src.auth.service import StaffUserService
from src.auth.utils import create_access_token
from src.auth.dependencies import get_current_user, require_permission
from src.auth.permissions import Permission
from src.config import settings

router = APIRouter()

@router.post("/login", response_model=AuthResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Staff login"""
    user = StaffUserService.authenticate(db, login_data.username, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role}, expires_delta=access_token_expires
    )
    return AuthResponse(
        access_token=access_token,
        token_type="bearer",
        user=StaffUserService.profile(user)
    )

@router.get("/me", response_model=StaffUserProfile)
def read_users_me(current_user = Depends(get_current_user)):
    """Get current staff user profile"""
    return StaffUserService.profile(current_user)

@router.get("/users", response_model=List[StaffUser])
def list_users(
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_USERS))
):
    return StaffUserService.list_users(db)

@router.post("/users", response_model=StaffUser, status_code=status.HTTP_201_CREATED)
def create_user(
    user: StaffUserCreate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_USERS))
):
    """Create a staff account"""
    try:
        return StaffUserService.create_user(db=db, user=user)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

@router.put("/users/{user_id}", response_model=StaffUser)
def update_user(
    user_id: int,
    user_update: StaffUserUpdate,
    db: Session = Depends(get_db),
    current_user = Depends(require_permission(Permission.MANAGE_USERS))
):
    """Update a staff account (role, activation, password reset)"""
    try:
        updated_user = StaffUserService.update_user(db=db, user_id=user_id, user_update=user_update)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    if not updated_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return updated_user
