# reservas/services/booking_service.py
"""
Orquestrador de reservas.

É o único ponto que chama ``EntityStore.create_reservations``. Cada pedido é validado pelo
motor de disponibilidade contra um retrato recém-lido das reservas e só então gravado. A
checagem em memória é apenas uma pré-checagem: se outro cliente gravar no mesmo horário
entre a leitura e a escrita, a guarda do banco dispara e o conflito é devolvido com o mesmo
formato ``SlotConflictError`` da checagem em memória.
"""
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from reservas.core.config import settings
from reservas.core.exceptions import BookingValidationError, PermissionDeniedError, SlotConflictError
from reservas.db import schemas
from reservas.services.availability import (ConflictInfo, Interval, Proposal, Rejection, RejectionReason,
                                            conflict_from_reservation, filter_available, find_conflict,
                                            slot_conflict, validate_batch, validate_reservation_request,
                                            weekly_occurrence_count, weekly_occurrences)
from reservas.services.store import EntityStore, StorageConflict
from reservas.utils.logger import logger

BOOKING_ROLES = ('professor', 'coordenador')
MANAGER_ROLES = ('admin', 'coordenador')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def rejection_error(rejection: Rejection):
    if rejection.reason == RejectionReason.SLOT_CONFLICT:
        return SlotConflictError(rejection)
    return BookingValidationError(rejection)


def month_window(year: int, month: int, tz) -> Interval:
    start = datetime(year, month, 1, tzinfo=tz)
    next_month = datetime(year + month // 12, month % 12 + 1, 1, tzinfo=tz)
    return Interval(start.astimezone(timezone.utc), next_month.astimezone(timezone.utc))


class BookingService:
    def __init__(self, store: EntityStore, clock: Callable[[], datetime] = utc_now, tz=None):
        self.store = store
        self.clock = clock
        self.tz = tz or ZoneInfo(settings.TIMEZONE)

    # --- Leitura ---

    def _snapshot(self, proposals: Sequence[Proposal], exclude_reservation_id: Optional[int] = None):
        """Reservas que podem conflitar com as propostas: mesmos ambientes, janela que cobre todas."""
        candidates = [p for p in proposals if p.environment_id and p.interval.is_valid]
        if not candidates:
            return []
        window = Interval(min(p.start for p in candidates), max(p.end for p in candidates))
        snapshot = self.store.list_reservations(environment_ids={p.environment_id for p in candidates}, window=window)
        if exclude_reservation_id is not None:
            snapshot = [r for r in snapshot if r.id != exclude_reservation_id]
        return snapshot

    def available_environments(self, interval: Interval, required_resources: Sequence[int] = ()) -> List[schemas.Environment]:
        if not interval.is_valid:
            return []
        candidates = self.store.list_environments()
        snapshot = self.store.list_reservations(window=interval)
        return filter_available(candidates, interval, required_resources, snapshot)

    def calendar_month(self, year: int, month: int, environment_id: Optional[int] = None) -> schemas.CalendarMonth:
        reservations = self.store.list_reservations(environment_id=environment_id, window=month_window(year, month, self.tz))
        days = OrderedDict()
        for res in reservations:
            day = res.start_time.astimezone(self.tz).date()
            days.setdefault(day, []).append(res)
        return schemas.CalendarMonth(
            year=year,
            month=month,
            days=[schemas.CalendarDay(day=day, reservas=items) for day, items in days.items()],
        )

    # --- Criação ---

    def build_proposal(self, actor: schemas.User, reservation_in: schemas.ReservationCreate) -> Proposal:
        """Admin reserva em nome de qualquer usuário; professor e coordenador, só para si."""
        if actor.role == 'admin':
            user_id = reservation_in.user_id
        elif actor.role in BOOKING_ROLES:
            user_id = actor.id
        else:
            raise PermissionDeniedError("Seu perfil não tem permissão para criar reservas.")
        return Proposal(reservation_in.environment_id, user_id, reservation_in.start_time, reservation_in.end_time)

    def create_reservation(self, proposal: Proposal, *, allow_past: bool = False) -> schemas.Reservation:
        return self.create_reservations([proposal], allow_past=allow_past)[0]

    def create_reservations(self, proposals: Sequence[Proposal], *, allow_past: bool = False) -> List[schemas.Reservation]:
        """
        Valida e grava um lote de forma atômica. O lote é validado contra as reservas
        existentes e entre si; qualquer recusa recusa o lote inteiro, sem gravar nada.
        """
        proposals = list(proposals)
        snapshot = self._snapshot(proposals)
        result = validate_batch(proposals, snapshot, self.clock(), allow_past=allow_past, tz=self.tz)
        if isinstance(result, Rejection):
            logger.info(f"Reserva recusada ({result.reason.value}): {result.message}")
            raise rejection_error(result)

        self.store.ensure_references(proposals)
        try:
            created = self.store.create_reservations(proposals)
        except StorageConflict:
            raise self._storage_conflict(proposals)

        for res in created:
            logger.info(
                f"Reserva {res.id} criada: ambiente {res.environment_id}, usuário {res.user_id}, "
                f"{res.start_time.isoformat()} - {res.end_time.isoformat()}"
            )
        return created

    def create_weekly(self, proposal: Proposal, until: date) -> List[schemas.Reservation]:
        weeks = weekly_occurrence_count(proposal, until, self.tz)
        if weeks > settings.MAX_RECURRENCE_WEEKS:
            rejection = Rejection(
                RejectionReason.RECURRENCE_TOO_LONG,
                f"A repetição semanal pode ter no máximo {settings.MAX_RECURRENCE_WEEKS} semanas "
                f"(pedido: {weeks}).",
            )
            logger.info(f"Reserva recusada ({rejection.reason.value}): {rejection.message}")
            raise rejection_error(rejection)
        return self.create_reservations(weekly_occurrences(proposal, until, self.tz))

    def backfill_reservation(self, actor: schemas.User, proposal: Proposal) -> schemas.Reservation:
        """Lançamento histórico: único caminho que dispensa a regra de data passada."""
        if actor.role != 'admin':
            raise PermissionDeniedError("Apenas administradores podem lançar reservas retroativas.")
        created = self.create_reservation(proposal, allow_past=True)
        logger.warning(
            f"AUDITORIA: admin '{actor.email}' lançou a reserva retroativa {created.id} "
            f"({created.start_time.isoformat()} - {created.end_time.isoformat()})."
        )
        return created

    def _storage_conflict(self, proposals: Sequence[Proposal], exclude_reservation_id: Optional[int] = None) -> SlotConflictError:
        """Traduz o disparo da guarda do banco para o mesmo formato da checagem em memória."""
        logger.warning("Conflito de horário detectado pelo banco de dados (gravação concorrente).")
        fresh = self._snapshot(proposals, exclude_reservation_id)
        for index, proposal in enumerate(proposals):
            conflicting = find_conflict(proposal, fresh)
            if conflicting is not None:
                position = index if len(proposals) > 1 else None
                return SlotConflictError(slot_conflict(conflict_from_reservation(conflicting), self.tz, position))

        first = proposals[0]
        return SlotConflictError(Rejection(
            RejectionReason.SLOT_CONFLICT,
            "Este horário entra em conflito com uma reserva existente. Por favor, atualize e tente novamente.",
            conflict=ConflictInfo(first.environment_id, first.start, first.end),
        ))

    # --- Alteração e cancelamento ---

    def reschedule(self, reservation_id: int, changes: schemas.ReservationUpdate) -> schemas.Reservation:
        current = self.store.get_reservation(reservation_id)
        proposal = Proposal(
            changes.environment_id or current.environment_id,
            changes.user_id or current.user_id,
            changes.start_time or current.start_time,
            changes.end_time or current.end_time,
        )
        snapshot = self._snapshot([proposal], exclude_reservation_id=reservation_id)
        result = validate_reservation_request(proposal, snapshot, self.clock(), tz=self.tz)
        if isinstance(result, Rejection):
            logger.info(f"Remarcação da reserva {reservation_id} recusada ({result.reason.value}).")
            raise rejection_error(result)

        self.store.ensure_references([proposal])
        try:
            updated = self.store.update_reservation(reservation_id, proposal)
        except StorageConflict:
            raise self._storage_conflict([proposal], exclude_reservation_id=reservation_id)
        logger.info(f"Reserva {reservation_id} remarcada.")
        return updated

    def cancel_reservation(self, reservation_id: int, actor: schemas.User) -> schemas.Reservation:
        """Exclusão definitiva pelo dono, por um coordenador ou por um admin."""
        reservation = self.store.get_reservation(reservation_id)
        if reservation.user_id != actor.id and actor.role not in MANAGER_ROLES:
            raise PermissionDeniedError("Você não pode cancelar a reserva de outro usuário.")
        self.store.delete_reservation(reservation_id)
        logger.warning(f"Reserva {reservation_id} EXCLUÍDA por '{actor.email}'.")
        return reservation
