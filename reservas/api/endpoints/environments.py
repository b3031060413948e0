# reservas/api/endpoints/environments.py
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from typing import List

from reservas.api.deps import get_booking_service, get_current_admin, get_current_user, get_store
from reservas.db import schemas
from reservas.db.schemas import as_utc
from reservas.services.availability import Interval
from reservas.services.booking_service import BookingService
from reservas.services.store import EntityStore
from reservas.utils.logger import logger

router = APIRouter()

@router.get("/", response_model=List[schemas.Environment])
def read_environments(
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Lista os ambientes com o nome do tipo e os recursos de cada um.
    """
    return store.list_environments()

@router.get("/disponiveis", response_model=schemas.AvailabilityResponse)
def read_available_environments(
    inicio: datetime = Query(..., description="Início do intervalo desejado (ISO 8601)."),
    fim: datetime = Query(..., description="Fim do intervalo desejado (ISO 8601)."),
    recursos: List[int] = Query([], description="IDs dos recursos que o ambiente precisa ter (todos)."),
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Ambientes livres durante todo o intervalo e com todos os recursos pedidos.
    Nenhum ambiente disponível é uma resposta válida (``total`` = 0).
    """
    environments = booking.available_environments(Interval(as_utc(inicio), as_utc(fim)), recursos)
    return {"total": len(environments), "ambientes": environments}

@router.get("/{environment_id}", response_model=schemas.Environment)
def read_environment(
    environment_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    return store.get_environment(environment_id)

@router.get("/{environment_id}/agenda", response_model=List[schemas.Reservation])
def read_environment_schedule(
    environment_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Agenda completa de um ambiente, em ordem de início.
    """
    store.get_environment(environment_id)
    return store.list_reservations(environment_id=environment_id)

@router.post("/", response_model=schemas.Environment, status_code=status.HTTP_201_CREATED)
def create_environment(
    env_in: schemas.EnvironmentCreate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    env = store.create_environment(env_in)
    logger.info(f"Admin '{current_user.email}' criou o ambiente '{env.name}' (ID: {env.id}).")
    return env

@router.put("/{environment_id}", response_model=schemas.Environment)
def update_environment(
    environment_id: int,
    env_in: schemas.EnvironmentUpdate,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Atualiza um ambiente. A lista ``resource_ids``, quando enviada, substitui por inteiro os
    recursos atuais.
    """
    env = store.update_environment(environment_id, env_in)
    logger.info(f"Ambiente {environment_id} atualizado por '{current_user.email}'.")
    return env

@router.delete("/{environment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_environment(
    environment_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_admin)
):
    store.delete_environment(environment_id)
    logger.warning(f"Admin '{current_user.email}' DELETOU o ambiente {environment_id}.")
    return
