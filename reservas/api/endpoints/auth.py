# reservas/api/endpoints/auth.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from reservas.api.deps import get_current_user, get_store
from reservas.core.config import settings
from reservas.core.rate_limit import limiter
from reservas.core.security import create_access_token
from reservas.db import schemas
from reservas.services.store import EntityStore
from reservas.utils.logger import logger

router = APIRouter()

@router.post("/token", response_model=schemas.Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login_for_access_token(
    request: Request,
    store: EntityStore = Depends(get_store),
    form_data: OAuth2PasswordRequestForm = Depends()
):
    """
    Endpoint para login e obtenção de token JWT. O campo *username* recebe o e-mail.
    """
    user = store.authenticate(form_data.username, form_data.password)
    if not user:
        logger.warning(f"Tentativa de login falhou para '{form_data.username}'.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email ou senha incorretos",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(user.email, user.role)
    logger.info(f"Usuário '{user.email}' autenticado.")
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/register", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def register(user_in: schemas.UserRegister, store: EntityStore = Depends(get_store)):
    """
    Cadastro público. Novas contas sempre recebem o perfil de aluno.
    """
    user = store.create_user(schemas.UserAdminCreate(**user_in.model_dump(), role='aluno'))
    logger.info(f"Novo cadastro: '{user.email}'.")
    return user

@router.get("/me", response_model=schemas.User)
def read_me(current_user: schemas.User = Depends(get_current_user)):
    return current_user

@router.put("/me", response_model=schemas.User)
def update_me(
    profile_in: schemas.ProfileUpdate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Atualiza nome, e-mail ou senha do próprio usuário. Exige a senha atual.
    """
    user = store.update_profile(current_user.id, profile_in)
    logger.info(f"Usuário {current_user.id} atualizou o próprio perfil.")
    return user
