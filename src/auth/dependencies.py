from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from src.database import get_db
from src.auth.utils import verify_token
from src.auth.service import StaffUserService
from src.auth.permissions import Permission, StaffRole, has_permission

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    """Get current authenticated staff user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = verify_token(token, credentials_exception)

    user = StaffUserService.get_user_by_id(db, user_id=token_data["user_id"])
    if user is None or not user.is_active:
        raise credentials_exception

    return user

def require_permission(permission: Permission):
    """Dependency factory: reject users whose role lacks the permission"""

    def checker(current_user = Depends(get_current_user)):
        if not has_permission(current_user.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return current_user

    return checker

def is_admin(user) -> bool:
    return user is not None and user.role == StaffRole.ADMIN.value
