# reservas/db/schemas.py
"""
DTOs da API e fronteira de tradução entre linhas do banco e entidades tipadas.

Toda conversão de modelos ORM para Environment/Reservation acontece nos métodos
``from_row`` daqui; endpoints e serviços nunca montam esses objetos à mão.
"""
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, Literal, List, Dict, Any
from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from reservas.core.config import settings

UserRole = Literal['admin', 'professor', 'coordenador', 'aluno']


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Horários sem fuso são a hora local de ``settings.TIMEZONE`` (a mesma do calendário e dos
    e-mails); os demais são só convertidos para UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return value.astimezone(timezone.utc)


# --- Tipos de ambiente e recursos ---
class NamedEntityBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('O nome não pode ficar em branco.')
        return v

class EnvironmentTypeCreate(NamedEntityBase):
    pass

class EnvironmentTypeUpdate(NamedEntityBase):
    pass

class EnvironmentType(NamedEntityBase):
    id: int
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class ResourceCreate(NamedEntityBase):
    pass

class ResourceUpdate(NamedEntityBase):
    pass

class Resource(NamedEntityBase):
    id: int
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True


# --- Ambientes ---
class EnvironmentBase(NamedEntityBase):
    location: Optional[str] = Field(None, max_length=500)
    type_id: int

class EnvironmentCreate(EnvironmentBase):
    resource_ids: List[int] = []

class EnvironmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=500)
    type_id: Optional[int] = None
    # Quando enviado, substitui por inteiro o conjunto de recursos; ausente, mantém o atual
    resource_ids: Optional[List[int]] = None

class Environment(EnvironmentBase):
    id: int
    type_name: Optional[str] = None
    resources: List[Resource] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Environment":
        return cls(
            id=row.id,
            name=row.name,
            location=row.location,
            type_id=row.type_id,
            type_name=row.type.name if row.type else None,
            resources=[Resource.model_validate(r) for r in row.resources],
            created_at=row.created_at,
        )

class AvailabilityResponse(BaseModel):
    total: int
    ambientes: List[Environment]


# --- Usuários e autenticação ---
class Token(BaseModel):
    access_token: str
    token_type: str

class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr

class UserRegister(UserBase):
    password: str = Field(..., min_length=6)

class UserAdminCreate(UserRegister):
    role: UserRole = 'aluno'

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    password: Optional[str] = Field(None, min_length=6)

class ProfileUpdate(BaseModel):
    current_password: str
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)

class User(UserBase):
    id: int
    role: str
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True


# --- Reservas ---
class ReservationCreate(BaseModel):
    environment_id: Optional[int] = None
    # Ignorado para quem não é admin: a reserva é sempre do próprio usuário
    user_id: Optional[int] = None
    start_time: datetime
    end_time: datetime

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_times(cls, v):
        return as_utc(v)

class ReservationBatchCreate(BaseModel):
    reservas: List[ReservationCreate] = Field(..., min_length=1)

class WeeklyReservationCreate(ReservationCreate):
    repeat_until: date

    @model_validator(mode='after')
    def validate_repeat_until(self):
        if self.repeat_until < self.start_time.date():
            raise ValueError('A data final da repetição não pode ser anterior ao início da reserva.')
        return self

class ReservationUpdate(BaseModel):
    environment_id: Optional[int] = None
    user_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_times(cls, v):
        return as_utc(v)

class Reservation(BaseModel):
    id: int
    environment_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    status: Literal['approved', 'pending', 'cancelled'] = 'approved'
    created_at: Optional[datetime] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    environment_name: Optional[str] = None
    environment_location: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Reservation":
        return cls(
            id=row.id,
            environment_id=row.environment_id,
            user_id=row.user_id,
            start_time=as_utc(row.start_time),
            end_time=as_utc(row.end_time),
            status=row.status,
            created_at=row.created_at,
            user_name=row.user.name if row.user else None,
            user_email=row.user.email if row.user else None,
            environment_name=row.environment.name if row.environment else None,
            environment_location=row.environment.location if row.environment else None,
        )

class CalendarDay(BaseModel):
    day: date
    reservas: List[Reservation]

class CalendarMonth(BaseModel):
    year: int
    month: int
    days: List[CalendarDay]


# --- Backup ---
class BackupData(BaseModel):
    users: List[Dict[str, Any]]
    environment_types: List[Dict[str, Any]]
    resources: List[Dict[str, Any]]
    environments: List[Dict[str, Any]]
    environment_resources: List[Dict[str, Any]]
    reservations: List[Dict[str, Any]]
