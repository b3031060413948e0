# reservas/services/availability.py
"""
Motor de disponibilidade.

Funções puras sobre um retrato em memória das reservas: nenhuma delas acessa o banco.
Intervalos são semiabertos, ``[início, fim)``: uma reserva que termina às 10:00 não
conflita com outra que começa às 10:00.

O resultado de uma validação é um ``Accepted`` ou uma ``Rejection`` tipada; o motor nunca
lança exceção para uma reserva recusada. Transformar a recusa em erro é papel do
``BookingService``.
"""
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    @property
    def is_valid(self) -> bool:
        return self.start < self.end


def overlaps(a: Interval, b: Interval) -> bool:
    """Intervalos inválidos (início >= fim) devem ser barrados antes de chegar aqui."""
    return a.start < b.end and b.start < a.end


class RejectionReason(str, Enum):
    MISSING_SELECTION = "missing_selection"
    INVERTED_INTERVAL = "inverted_interval"
    PAST_DATED = "past_dated"
    SLOT_CONFLICT = "slot_conflict"
    RECURRENCE_TOO_LONG = "recurrence_too_long"


@dataclass(frozen=True)
class Proposal:
    environment_id: Optional[int]
    user_id: Optional[int]
    start: datetime
    end: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


@dataclass(frozen=True)
class ConflictInfo:
    environment_id: int
    start: datetime
    end: datetime
    # Ausente quando o conflito é com outra proposta do mesmo lote
    reservation_id: Optional[int] = None
    occupant_name: Optional[str] = None
    environment_name: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "reservation_id": self.reservation_id,
            "environment_id": self.environment_id,
            "environment_name": self.environment_name,
            "occupant_name": self.occupant_name,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
        }


@dataclass(frozen=True)
class Accepted:
    proposal: Proposal


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    message: str
    conflict: Optional[ConflictInfo] = None
    # Posição da proposta recusada dentro de um lote
    index: Optional[int] = None


ValidationResult = Union[Accepted, Rejection]


def counts_toward_occupancy(reservation) -> bool:
    return getattr(reservation, "status", "approved") != "cancelled"


def reservation_interval(reservation) -> Interval:
    return Interval(reservation.start_time, reservation.end_time)


def occupied_environment_ids(interval: Interval, existing_reservations: Iterable) -> set:
    return {
        res.environment_id
        for res in existing_reservations
        if counts_toward_occupancy(res) and overlaps(reservation_interval(res), interval)
    }


def filter_available(candidates: Sequence, interval: Interval, required_resources: Iterable[int],
                     existing_reservations: Iterable) -> list:
    """
    Ambientes livres durante todo o intervalo e que possuem *todos* os recursos exigidos.

    A ordem de ``candidates`` é preservada. Intervalo degenerado não tem ambiente livre.
    """
    if not interval.is_valid:
        return []

    occupied = occupied_environment_ids(interval, existing_reservations)
    required = set(required_resources)

    available = []
    for env in candidates:
        if env.id in occupied:
            continue
        if not required.issubset({r.id for r in env.resources}):
            continue
        available.append(env)
    return available


def find_conflict(proposal: Proposal, existing_reservations: Iterable,
                  exclude_reservation_id: Optional[int] = None):
    for res in existing_reservations:
        if res.environment_id != proposal.environment_id or not counts_toward_occupancy(res):
            continue
        if exclude_reservation_id is not None and res.id == exclude_reservation_id:
            continue
        if overlaps(reservation_interval(res), proposal.interval):
            return res
    return None


def conflict_from_reservation(reservation) -> ConflictInfo:
    return ConflictInfo(
        environment_id=reservation.environment_id,
        start=reservation.start_time,
        end=reservation.end_time,
        reservation_id=getattr(reservation, "id", None),
        occupant_name=getattr(reservation, "user_name", None),
        environment_name=getattr(reservation, "environment_name", None),
    )


def describe_conflict(conflict: ConflictInfo, tz: Optional[tzinfo] = None) -> str:
    tz = tz or timezone.utc
    start = conflict.start.astimezone(tz)
    end = conflict.end.astimezone(tz)
    period = f"de {start:%d/%m/%Y %H:%M} às {end:%H:%M}"
    if end.date() != start.date():
        period = f"de {start:%d/%m/%Y %H:%M} a {end:%d/%m/%Y %H:%M}"
    env_name = conflict.environment_name or "desconhecido"
    if conflict.reservation_id is None:
        return f'Conflito de horário! Duas reservas do mesmo lote ocupam o ambiente "{env_name}" {period}.'
    occupant = conflict.occupant_name or "desconhecido"
    return f'Conflito de horário! O ambiente "{env_name}" já está reservado por "{occupant}" {period}.'


def slot_conflict(conflict: ConflictInfo, tz: Optional[tzinfo] = None, index: Optional[int] = None) -> Rejection:
    return Rejection(RejectionReason.SLOT_CONFLICT, describe_conflict(conflict, tz), conflict=conflict, index=index)


def validate_reservation_request(proposal: Proposal, existing_reservations: Iterable, now: datetime, *,
                                 allow_past: bool = False, exclude_reservation_id: Optional[int] = None,
                                 tz: Optional[tzinfo] = None) -> ValidationResult:
    """
    Valida uma proposta contra as reservas existentes. A primeira regra violada vence:

    1. ambiente e usuário selecionados;
    2. início antes do fim;
    3. início não está no passado (a menos que ``allow_past``);
    4. nenhuma reserva ativa do mesmo ambiente sobrepõe o intervalo.

    ``exclude_reservation_id`` ignora a própria reserva ao remarcá-la.
    """
    if not proposal.environment_id or not proposal.user_id:
        return Rejection(RejectionReason.MISSING_SELECTION, "Selecione o ambiente e o usuário da reserva.")

    if not proposal.interval.is_valid:
        return Rejection(RejectionReason.INVERTED_INTERVAL, "O horário de término deve ser após o horário de início.")

    if not allow_past and proposal.start < now:
        return Rejection(RejectionReason.PAST_DATED, "Não é possível criar uma reserva em uma data ou horário passados.")

    conflicting = find_conflict(proposal, existing_reservations, exclude_reservation_id)
    if conflicting is not None:
        return slot_conflict(conflict_from_reservation(conflicting), tz)

    return Accepted(proposal)


def validate_batch(proposals: Sequence[Proposal], existing_reservations: Sequence, now: datetime, *,
                   allow_past: bool = False, tz: Optional[tzinfo] = None) -> Union[List[Accepted], Rejection]:
    """
    Valida um lote inteiro: cada proposta contra as reservas existentes e contra as
    propostas anteriores do mesmo lote. Qualquer recusa recusa o lote todo.
    """
    accepted: List[Accepted] = []
    for index, proposal in enumerate(proposals):
        result = validate_reservation_request(proposal, existing_reservations, now, allow_past=allow_past, tz=tz)
        if isinstance(result, Rejection):
            return replace(result, index=index)

        for earlier in accepted:
            other = earlier.proposal
            if other.environment_id == proposal.environment_id and overlaps(other.interval, proposal.interval):
                env_name = _environment_name_for(proposal.environment_id, existing_reservations)
                conflict = ConflictInfo(proposal.environment_id, other.start, other.end, environment_name=env_name)
                return slot_conflict(conflict, tz, index=index)
        accepted.append(result)
    return accepted


def _environment_name_for(environment_id, reservations) -> Optional[str]:
    for res in reservations:
        if res.environment_id == environment_id and getattr(res, "environment_name", None):
            return res.environment_name
    return None


def weekly_occurrence_count(proposal: Proposal, until: date, tz: Optional[tzinfo] = None) -> int:
    """Quantas semanas ``weekly_occurrences`` geraria, sem montar as propostas."""
    first_day = proposal.start.astimezone(tz or timezone.utc).date()
    if until < first_day:
        return 0
    return (until - first_day).days // 7 + 1


def weekly_occurrences(proposal: Proposal, until: date, tz: Optional[tzinfo] = None) -> List[Proposal]:
    """
    Repete a proposta toda semana, no mesmo horário de parede do fuso ``tz``, até ``until``
    (inclusive, na data local).
    """
    tz = tz or timezone.utc
    local_start = proposal.start.astimezone(tz)
    local_end = proposal.end.astimezone(tz)

    occurrences = []
    for week in range(weekly_occurrence_count(proposal, until, tz)):
        start = local_start + timedelta(weeks=week)
        end = local_end + timedelta(weeks=week)
        occurrences.append(replace(proposal, start=start.astimezone(timezone.utc), end=end.astimezone(timezone.utc)))
    return occurrences
