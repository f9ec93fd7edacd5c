from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nedapay.core.exceptions import AppException
from nedapay.db.models import User


def get_user_by_privy_id(db: Session, privy_user_id: str) -> User | None:
    return db.query(User).filter(User.privy_user_id == privy_user_id).first()


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "privyUserId": user.privy_user_id,
        "wallet": user.wallet,
        "email": user.email,
        "name": user.name,
        "isActive": bool(user.is_active),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def sync_user(db: Session, privy_user_id: str, wallet: str, email: str | None = None, name: str | None = None) -> User:
    wallet = wallet.strip().lower()
    user = get_user_by_privy_id(db, privy_user_id)
    if user is None:
        user = User(privy_user_id=privy_user_id, wallet=wallet, email=email, name=name)
        db.add(user)
    else:
        # A wallet is bound to its user for good once set.
        if user.wallet and user.wallet != wallet:
            raise AppException("Wallet already set for this user", status_code=409)
        user.wallet = wallet
        if email:
            user.email = email
        if name:
            user.name = name
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppException("Wallet is linked to another user", status_code=409)
    db.refresh(user)
    return user
