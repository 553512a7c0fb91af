import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
from datetime import datetime

from src.models import StaffUser
from src.auth.schemas import StaffUserCreate, StaffUserUpdate, StaffUserProfile
from src.auth.permissions import permissions_for
from src.auth.utils import get_password_hash, verify_password

logger = logging.getLogger(__name__)

class StaffUserService:
    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[StaffUser]:
        """Get staff user by username"""
        return db.query(StaffUser).filter(StaffUser.username == username).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[StaffUser]:
        """Get staff user by ID"""
        return db.query(StaffUser).filter(StaffUser.id == user_id).first()

    @staticmethod
    def list_users(db: Session) -> List[StaffUser]:
        return db.query(StaffUser).order_by(StaffUser.id).all()

    @staticmethod
    def create_user(db: Session, user: StaffUserCreate) -> StaffUser:
        """Create a new staff account"""
        db_user = StaffUser(
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            password_hash=get_password_hash(user.password),
            is_active=True
        )

        try:
            db.add(db_user)
            db.commit()
            db.refresh(db_user)
        except IntegrityError:
            db.rollback()
            raise ValueError("Username or email already registered")

        logger.info("Created staff user %s with role %s", db_user.username, db_user.role)
        return db_user

    @staticmethod
    def authenticate(db: Session, username: str, password: str) -> Optional[StaffUser]:
        """Authenticate an active staff user and stamp the login time"""
        user = StaffUserService.get_user_by_username(db, username)
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", username)
            return None

        user.last_login = datetime.now()
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def update_user(db: Session, user_id: int, user_update: StaffUserUpdate) -> Optional[StaffUser]:
        """Update staff user information"""
        db_user = StaffUserService.get_user_by_id(db, user_id)
        if not db_user:
            return None

        update_data = user_update.model_dump(exclude_unset=True)

        if "password" in update_data:
            password = update_data.pop("password")
            if password:
                db_user.password_hash = get_password_hash(password)
        if update_data.get("role") is not None:
            update_data["role"] = update_data["role"].value

        for field, value in update_data.items():
            setattr(db_user, field, value)

        try:
            db.commit()
            db.refresh(db_user)
            return db_user
        except IntegrityError:
            db.rollback()
            raise ValueError("Email already exists")

    @staticmethod
    def profile(user: StaffUser) -> StaffUserProfile:
        profile = StaffUserProfile.model_validate(user)
        return profile.model_copy(update={"permissions": permissions_for(user.role)})
