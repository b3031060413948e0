# reservas/api/endpoints/users.py
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from reservas.api.deps import get_current_admin, get_store
from reservas.db import schemas
from reservas.services.store import EntityStore
from reservas.utils.logger import logger

router = APIRouter()

@router.get("/", response_model=List[schemas.User])
def read_users(
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Retorna todos os usuários. Apenas para administradores.
    """
    return store.list_users()

@router.post("/", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user_by_admin(
    user_in: schemas.UserAdminCreate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Cria um novo usuário com um perfil específico. Apenas para administradores.
    """
    user = store.create_user(user_in)
    logger.info(f"Admin '{current_user.email}' criou o usuário '{user.email}' com perfil '{user.role}'.")
    return user

@router.put("/{user_id}", response_model=schemas.User)
def update_user_by_admin(
    user_id: int,
    user_in: schemas.UserUpdate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Atualiza um usuário. A senha só é trocada quando informada.
    """
    user = store.update_user(user_id, user_in)
    logger.info(f"Admin '{current_user.email}' atualizou o usuário '{user.email}' (ID: {user_id}).")
    return user

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user_by_admin(
    user_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Deleta um usuário. Bloqueado se ele tiver reservas; um admin não pode deletar a si mesmo.
    """
    if current_user.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Você não pode deletar sua própria conta de administrador.",
        )

    store.delete_user(user_id)
    logger.warning(f"Admin '{current_user.email}' DELETOU o usuário {user_id}.")
    return
