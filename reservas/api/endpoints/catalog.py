# reservas/api/endpoints/catalog.py
"""
Cadastros simples: tipos de ambiente e recursos. Ambos são só um nome único cuja
exclusão é bloqueada enquanto algum ambiente o usa.
"""
from fastapi import APIRouter, Depends, status
from typing import List

from reservas.api.deps import get_current_admin, get_current_user, get_store
from reservas.db import schemas
from reservas.services.store import EntityStore
from reservas.utils.logger import logger

types_router = APIRouter()
resources_router = APIRouter()

# --- Tipos de ambiente ---

@types_router.get("/", response_model=List[schemas.EnvironmentType], summary="Lista os tipos de ambiente")
def read_environment_types(
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    return store.list_environment_types()

@types_router.post("/", response_model=schemas.EnvironmentType, status_code=status.HTTP_201_CREATED,
                   summary="Cria um tipo de ambiente")
def create_environment_type(
    type_in: schemas.EnvironmentTypeCreate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    env_type = store.create_environment_type(type_in.name)
    logger.info(f"Admin '{current_user.email}' criou o tipo de ambiente '{env_type.name}'.")
    return env_type

@types_router.put("/{type_id}", response_model=schemas.EnvironmentType, summary="Atualiza um tipo de ambiente")
def update_environment_type(
    type_id: int,
    type_in: schemas.EnvironmentTypeUpdate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    return store.update_environment_type(type_id, type_in.name)

@types_router.delete("/{type_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Deleta um tipo de ambiente")
def delete_environment_type(
    type_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    *Nota: um tipo não pode ser deletado enquanto houver ambientes desse tipo.*
    """
    store.delete_environment_type(type_id)
    logger.warning(f"Admin '{current_user.email}' DELETOU o tipo de ambiente {type_id}.")
    return

# --- Recursos ---

@resources_router.get("/", response_model=List[schemas.Resource], summary="Lista os recursos")
def read_resources(
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    return store.list_resources()

@resources_router.post("/", response_model=schemas.Resource, status_code=status.HTTP_201_CREATED,
                       summary="Cria um recurso")
def create_resource(
    resource_in: schemas.ResourceCreate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    resource = store.create_resource(resource_in.name)
    logger.info(f"Admin '{current_user.email}' criou o recurso '{resource.name}'.")
    return resource

@resources_router.put("/{resource_id}", response_model=schemas.Resource, summary="Atualiza um recurso")
def update_resource(
    resource_id: int,
    resource_in: schemas.ResourceUpdate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    return store.update_resource(resource_id, resource_in.name)

@resources_router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Deleta um recurso")
def delete_resource(
    resource_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    *Nota: um recurso não pode ser deletado enquanto estiver associado a algum ambiente.*
    """
    store.delete_resource(resource_id)
    logger.warning(f"Admin '{current_user.email}' DELETOU o recurso {resource_id}.")
    return
