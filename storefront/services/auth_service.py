"""Staff authentication: bcrypt credentials and session tokens for /admin"""
import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from storefront.config import get_settings
from storefront.models.user import StaffSession, StaffUser
from storefront.utils.logger import log

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def normalize_email(email: str | None) -> str:
    return (email or "").lower().strip()


def authenticate(db: Session, email: str, password: str) -> StaffUser | None:
    """Verify credentials and return the active staff user, or None."""
    user = (
        db.query(StaffUser)
        .filter(StaffUser.email == normalize_email(email), StaffUser.is_active == True)  # noqa: E712
        .first()
    )
    if not user or not pwd_context.verify(password or "", user.password_hash):
        return None
    user.last_login = datetime.utcnow()
    db.commit()
    return user


def create_session(db: Session, user_id: int) -> str:
    """Issue a session token valid for session_duration_hours."""
    settings = get_settings()
    token = secrets.token_hex(32)
    db.add(StaffSession(
        user_id=user_id,
        token=token,
        expires_at=datetime.utcnow() + timedelta(hours=settings.session_duration_hours),
    ))
    db.commit()
    return token


def validate_session(db: Session, token: str) -> StaffUser | None:
    if not token:
        return None
    session = (
        db.query(StaffSession)
        .filter(StaffSession.token == token, StaffSession.expires_at > datetime.utcnow())
        .first()
    )
    if not session:
        return None
    return (
        db.query(StaffUser)
        .filter(StaffUser.id == session.user_id, StaffUser.is_active == True)  # noqa: E712
        .first()
    )


def delete_session(db: Session, token: str) -> None:
    db.query(StaffSession).filter(StaffSession.token == token).delete()
    db.commit()


def cleanup_expired(db: Session) -> int:
    """Delete expired sessions. Returns count removed."""
    count = db.query(StaffSession).filter(StaffSession.expires_at <= datetime.utcnow()).delete()
    db.commit()
    return count


def seed_initial_user(db: Session) -> StaffUser | None:
    """Create the first admin from INITIAL_ADMIN_* when the staff table is empty."""
    settings = get_settings()
    if not settings.initial_admin_email or not settings.initial_admin_password:
        return None
    if db.query(StaffUser).first():
        return None
    user = StaffUser(
        email=normalize_email(settings.initial_admin_email),
        password_hash=pwd_context.hash(settings.initial_admin_password),
        display_name="Admin",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info(f"Seeded initial admin user: {user.email}")
    return user
