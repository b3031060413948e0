# reservas/api/endpoints/reservations.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from typing import List, Optional

from reservas.api.deps import get_booking_service, get_current_admin, get_current_user, get_store
from reservas.db import schemas
from reservas.services.booking_service import BookingService, month_window
from reservas.services.email_service import EmailService
from reservas.services.store import EntityStore

router = APIRouter()

# =================================================================
# CONSULTAS
# =================================================================

@router.get("/", response_model=List[schemas.Reservation])
def read_reservations(
    ambiente_id: Optional[int] = Query(None, description="Filtra por ambiente."),
    usuario_id: Optional[int] = Query(None, description="Filtra por usuário."),
    ano: Optional[int] = Query(None, ge=2000, le=2100),
    mes: Optional[int] = Query(None, ge=1, le=12),
    store: EntityStore = Depends(get_store),
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Lista reservas. ``ano`` e ``mes`` precisam vir juntos e selecionam as reservas que
    ocupam algum momento do mês.
    """
    if (ano is None) != (mes is None):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Informe 'ano' e 'mes' juntos.")
    window = month_window(ano, mes, booking.tz) if ano is not None else None
    return store.list_reservations(environment_id=ambiente_id, user_id=usuario_id, window=window)

@router.get("/minhas", response_model=List[schemas.Reservation])
def read_my_reservations(
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    return store.list_reservations(user_id=current_user.id)

@router.get("/calendario", response_model=schemas.CalendarMonth)
def read_calendar(
    ano: int = Query(..., ge=2000, le=2100),
    mes: int = Query(..., ge=1, le=12),
    ambiente_id: Optional[int] = Query(None),
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Retrato do mês para o calendário, agrupado pelo dia local de início de cada reserva.
    """
    return booking.calendar_month(ano, mes, ambiente_id)

@router.get("/{reservation_id}", response_model=schemas.Reservation)
def read_reservation(
    reservation_id: int,
    store: EntityStore = Depends(get_store),
    current_user: schemas.User = Depends(get_current_user)
):
    return store.get_reservation(reservation_id)

# =================================================================
# CRIAÇÃO
# =================================================================

@router.post("/", response_model=schemas.Reservation, status_code=status.HTTP_201_CREATED)
def create_reservation(
    reservation_in: schemas.ReservationCreate,
    background_tasks: BackgroundTasks,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Cria uma reserva. Admin pode reservar em nome de outro usuário (``user_id``);
    professor e coordenador reservam para si mesmos.
    """
    proposal = booking.build_proposal(current_user, reservation_in)
    created = booking.create_reservation(proposal)
    background_tasks.add_task(EmailService.send_reservation_confirmation, [created])
    return created

@router.post("/lote", response_model=List[schemas.Reservation], status_code=status.HTTP_201_CREATED)
def create_reservation_batch(
    batch_in: schemas.ReservationBatchCreate,
    background_tasks: BackgroundTasks,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Cria várias reservas de uma vez. Se qualquer uma conflitar (com o que já existe ou
    com outra do próprio lote), nenhuma é gravada.
    """
    proposals = [booking.build_proposal(current_user, item) for item in batch_in.reservas]
    created = booking.create_reservations(proposals)
    background_tasks.add_task(EmailService.send_reservation_confirmation, created)
    return created

@router.post("/semanal", response_model=List[schemas.Reservation], status_code=status.HTTP_201_CREATED)
def create_weekly_reservation(
    weekly_in: schemas.WeeklyReservationCreate,
    background_tasks: BackgroundTasks,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Repete a mesma reserva toda semana até ``repeat_until`` (inclusive). Tudo ou nada.
    """
    proposal = booking.build_proposal(current_user, weekly_in)
    created = booking.create_weekly(proposal, weekly_in.repeat_until)
    background_tasks.add_task(EmailService.send_reservation_confirmation, created)
    return created

@router.post("/retroativa", response_model=schemas.Reservation, status_code=status.HTTP_201_CREATED)
def create_backfill_reservation(
    reservation_in: schemas.ReservationCreate,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_admin)
):
    """
    Lançamento histórico (apenas admin): aceita horários passados e fica registrado em log.
    """
    proposal = booking.build_proposal(current_user, reservation_in)
    return booking.backfill_reservation(current_user, proposal)

# =================================================================
# ALTERAÇÃO E CANCELAMENTO
# =================================================================

@router.put("/{reservation_id}", response_model=schemas.Reservation)
def reschedule_reservation(
    reservation_id: int,
    changes: schemas.ReservationUpdate,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_admin)
):
    return booking.reschedule(reservation_id, changes)

@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_reservation(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    booking: BookingService = Depends(get_booking_service),
    current_user: schemas.User = Depends(get_current_user)
):
    """
    Exclui a reserva definitivamente. Permitido ao dono, a coordenadores e a admins.
    """
    cancelled = booking.cancel_reservation(reservation_id, current_user)
    background_tasks.add_task(EmailService.send_cancellation_notice, cancelled)
    return
