from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.clock import parse_uuid
from app.core.security import user_to_dict
from app.database import get_db
from app.models import User

router = APIRouter()


@router.get('/')
async def list_users(db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.created_at.asc()).all()
    return {'success': True, 'data': [user_to_dict(u) for u in users]}


@router.get('/{user_id}')
async def get_user(user_id: str, db: Session = Depends(get_db)):
    user_uuid = parse_uuid(user_id)
    user = db.get(User, user_uuid) if user_uuid else None
    if user is None:
        raise HTTPException(status_code=404, detail='User not found')
    return {'success': True, 'data': user_to_dict(user)}
