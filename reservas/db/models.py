# reservas/db/models.py
from datetime import timezone

from sqlalchemy import (Column, Integer, String, DateTime, ForeignKey, Enum, Table,
                        CheckConstraint, DDL, event)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

Base = declarative_base()

USER_ROLES = ('admin', 'professor', 'coordenador', 'aluno')
RESERVATION_STATUSES = ('approved', 'pending', 'cancelled')


class UTCDateTime(TypeDecorator):
    """
    Timestamp sempre gravado em UTC e sempre devolvido com tzinfo.
    No SQLite o valor é gravado sem fuso (o driver descarta o tzinfo), por isso a
    conversão para UTC precisa acontecer antes; a comparação textual dos gatilhos
    de sobreposição depende disso.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name != "postgresql":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


environment_resources = Table(
    "environment_resources",
    Base.metadata,
    Column("environment_id", Integer, ForeignKey("environments.id", ondelete="CASCADE"), primary_key=True),
    Column("resource_id", Integer, ForeignKey("resources.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(320), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(*USER_ROLES, name='user_role'), default='aluno', nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    reservations = relationship("Reservation", back_populates="user", passive_deletes="all")


class EnvironmentType(Base):
    __tablename__ = "environment_types"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    environments = relationship("Environment", back_populates="type", passive_deletes="all")


class Resource(Base):
    __tablename__ = "resources"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    environments = relationship("Environment", secondary=environment_resources, back_populates="resources")


class Environment(Base):
    __tablename__ = "environments"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    location = Column(String(500), nullable=True)
    type_id = Column(Integer, ForeignKey("environment_types.id"), nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    type = relationship("EnvironmentType", back_populates="environments")
    resources = relationship("Resource", secondary=environment_resources, back_populates="environments",
                             order_by="Resource.name")
    reservations = relationship("Reservation", back_populates="environment", passive_deletes="all")


class Reservation(Base):
    __tablename__ = "reservations"
    id = Column(Integer, primary_key=True, index=True)
    environment_id = Column(Integer, ForeignKey("environments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(Enum(*RESERVATION_STATUSES, name='reservation_status'), default='approved', nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())

    environment = relationship("Environment", back_populates="reservations")
    user = relationship("User", back_populates="reservations")

    __table_args__ = (
        CheckConstraint('end_time > start_time', name='check_end_time_after_start_time'),
    )


# --- Guarda de sobreposição no armazenamento ---
# É a autoridade final contra reservas duplicadas: a checagem em memória do motor de
# disponibilidade pode ler um retrato desatualizado quando dois clientes disputam o horário.

event.listen(
    Reservation.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)

event.listen(
    Reservation.__table__,
    "after_create",
    DDL(
        "ALTER TABLE reservations ADD CONSTRAINT reservations_no_overlap "
        "EXCLUDE USING gist (environment_id WITH =, tstzrange(start_time, end_time) WITH &&) "
        "WHERE (status <> 'cancelled')"
    ).execute_if(dialect="postgresql"),
)

event.listen(
    Reservation.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER reservations_no_overlap_insert BEFORE INSERT ON reservations "
        "WHEN NEW.status <> 'cancelled' AND EXISTS ("
        "SELECT 1 FROM reservations r WHERE r.environment_id = NEW.environment_id "
        "AND r.status <> 'cancelled' AND r.start_time < NEW.end_time AND r.end_time > NEW.start_time) "
        "BEGIN SELECT RAISE(ABORT, 'reservations_no_overlap'); END"
    ).execute_if(dialect="sqlite"),
)

event.listen(
    Reservation.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER reservations_no_overlap_update BEFORE UPDATE ON reservations "
        "WHEN NEW.status <> 'cancelled' AND EXISTS ("
        "SELECT 1 FROM reservations r WHERE r.environment_id = NEW.environment_id AND r.id != NEW.id "
        "AND r.status <> 'cancelled' AND r.start_time < NEW.end_time AND r.end_time > NEW.start_time) "
        "BEGIN SELECT RAISE(ABORT, 'reservations_no_overlap'); END"
    ).execute_if(dialect="sqlite"),
)
