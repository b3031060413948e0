# reservas/api/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from reservas.core.config import settings
from reservas.core.security import decode_access_token
from reservas.db import schemas
from reservas.db.session import SessionLocal
from reservas.services.booking_service import BookingService
from reservas.services.store import EntityStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_store(db: Session = Depends(get_db)) -> EntityStore:
    return EntityStore(db)

def get_booking_service(store: EntityStore = Depends(get_store)) -> BookingService:
    return BookingService(store)

def get_current_user(store: EntityStore = Depends(get_store), token: str = Depends(oauth2_scheme)) -> schemas.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Não foi possível validar as credenciais",
        headers={"WWW-Authenticate": "Bearer"},
    )
    email = decode_access_token(token)
    if email is None:
        raise credentials_exception

    user = store.get_user_by_email(email)
    if user is None:
        raise credentials_exception
    return user

def get_current_admin(current_user: schemas.User = Depends(get_current_user)) -> schemas.User:
    if current_user.role != 'admin':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado. Apenas administradores."
        )
    return current_user
