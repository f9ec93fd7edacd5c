from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from nedapay.api.deps import get_current_user, get_privy_user_id
from nedapay.db.models import User
from nedapay.db.session import get_db
from nedapay.schemas.user import UserSyncRequest
from nedapay.services.user_service import serialize_user, sync_user

router = APIRouter()


@router.post("/sync")
def users_sync(
    payload: UserSyncRequest,
    db: Session = Depends(get_db),
    privy_user_id: str = Depends(get_privy_user_id),
):
    user = sync_user(db, privy_user_id, payload.wallet, email=payload.email, name=payload.name)
    return {"data": serialize_user(user)}


@router.get("/me")
def users_me(user: User = Depends(get_current_user)):
    return {"data": serialize_user(user)}
