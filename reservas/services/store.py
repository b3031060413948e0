# reservas/services/store.py
"""
Entity Store: o contrato de persistência usado pelo restante do sistema.

Tudo que sai daqui já passou pela tradução de ``schemas.*.from_row``; erros do driver são
convertidos para a taxonomia de ``reservas.core.exceptions``. A única exceção é o disparo
da guarda de sobreposição do banco, que vira ``StorageConflict`` e é traduzida pelo
``BookingService``.
"""
from contextlib import contextmanager
from typing import Iterable, List, Optional

from sqlalchemy import exc, func
from sqlalchemy.orm import Session, joinedload, selectinload

from reservas.core.exceptions import (NotFoundError, PermissionDeniedError, ReferenceInUseError,
                                      StorageUnavailableError, UniquenessError)
from reservas.core.security import get_password_hash, verify_password
from reservas.db import models, schemas
from reservas.services.availability import Interval, Proposal
from reservas.utils.logger import logger

OVERLAP_CONSTRAINT = "reservations_no_overlap"


class StorageConflict(Exception):
    """A guarda de sobreposição do banco recusou a escrita."""


def _is_overlap_violation(error: exc.DBAPIError) -> bool:
    pgcode = getattr(error.orig, "pgcode", None)
    return pgcode == "23P01" or OVERLAP_CONSTRAINT in str(error.orig)


def _is_unique_violation(error: exc.DBAPIError) -> bool:
    pgcode = getattr(error.orig, "pgcode", None)
    return pgcode == "23505" or "UNIQUE constraint failed" in str(error.orig)


def _is_foreign_key_violation(error: exc.DBAPIError) -> bool:
    pgcode = getattr(error.orig, "pgcode", None)
    return pgcode == "23503" or "FOREIGN KEY constraint failed" in str(error.orig)


class EntityStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _write(self, unique_field: str = "name", unique_message: str = "Já existe um registro com este nome.",
               in_use_message: str = "Não é possível excluir: o registro ainda está em uso."):
        try:
            yield
            self.db.commit()
        except exc.DBAPIError as e:
            self.db.rollback()
            if _is_overlap_violation(e):
                raise StorageConflict(str(e.orig)) from e
            if _is_unique_violation(e):
                raise UniquenessError(unique_message, unique_field) from e
            if _is_foreign_key_violation(e):
                raise ReferenceInUseError(in_use_message) from e
            if isinstance(e, exc.OperationalError):
                logger.error(f"Banco de dados indisponível durante escrita: {e}")
                raise StorageUnavailableError("Serviço de dados indisponível. Tente novamente em instantes.") from e
            raise
        except Exception:
            self.db.rollback()
            raise

    # --- Usuários e autenticação ---

    def _get_user_row(self, user_id: int) -> models.User:
        user = self.db.query(models.User).filter(models.User.id == user_id).first()
        if not user:
            raise NotFoundError("Usuário não encontrado.")
        return user

    def _ensure_email_free(self, email: str, user_id: Optional[int] = None):
        existing = self.db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()
        if existing and existing.id != user_id:
            raise UniquenessError("Este e-mail já está em uso por outro usuário.", "email")

    def authenticate(self, email: str, password: str) -> Optional[schemas.User]:
        user = self.db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()
        if not user or not verify_password(password, user.password_hash):
            return None
        return schemas.User.model_validate(user)

    def get_user(self, user_id: int) -> schemas.User:
        return schemas.User.model_validate(self._get_user_row(user_id))

    def get_user_by_email(self, email: str) -> Optional[schemas.User]:
        user = self.db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()
        return schemas.User.model_validate(user) if user else None

    def list_users(self) -> List[schemas.User]:
        users = self.db.query(models.User).order_by(models.User.name).all()
        return [schemas.User.model_validate(u) for u in users]

    def create_user(self, user_in: schemas.UserAdminCreate) -> schemas.User:
        self._ensure_email_free(user_in.email)
        user = models.User(
            name=user_in.name,
            email=user_in.email,
            password_hash=get_password_hash(user_in.password),
            role=user_in.role,
        )
        with self._write("email", "Este e-mail já está em uso por outro usuário."):
            self.db.add(user)
        self.db.refresh(user)
        return schemas.User.model_validate(user)

    def update_user(self, user_id: int, user_in: schemas.UserUpdate) -> schemas.User:
        user = self._get_user_row(user_id)
        update_data = user_in.model_dump(exclude_unset=True)
        if update_data.get("email"):
            self._ensure_email_free(update_data["email"], user_id)

        password = update_data.pop("password", None)
        if password:
            user.password_hash = get_password_hash(password)
        for key, value in update_data.items():
            if value is not None:
                setattr(user, key, value)

        with self._write("email", "Este e-mail já está em uso por outro usuário."):
            pass
        self.db.refresh(user)
        return schemas.User.model_validate(user)

    def update_profile(self, user_id: int, profile_in: schemas.ProfileUpdate) -> schemas.User:
        """Alteração feita pelo próprio usuário: exige a senha atual."""
        user = self._get_user_row(user_id)
        if not verify_password(profile_in.current_password, user.password_hash):
            raise PermissionDeniedError("A senha atual está incorreta.")
        changes = schemas.UserUpdate(**profile_in.model_dump(exclude_unset=True, exclude={"current_password"}))
        return self.update_user(user_id, changes)

    def delete_user(self, user_id: int) -> None:
        user = self._get_user_row(user_id)
        if self.db.query(models.Reservation).filter(models.Reservation.user_id == user_id).count():
            raise ReferenceInUseError("Não é possível excluir este usuário, pois ele possui reservas associadas.")
        with self._write(in_use_message="Não é possível excluir este usuário, pois ele possui reservas associadas."):
            self.db.delete(user)

    # --- Tipos de ambiente e recursos ---
    # Os dois cadastros são idênticos: só um nome único, exclusão bloqueada enquanto em uso.

    def _list_named(self, model, schema):
        return [schema.model_validate(row) for row in self.db.query(model).order_by(model.name).all()]

    def _get_named_row(self, model, item_id: int, label: str):
        row = self.db.query(model).filter(model.id == item_id).first()
        if not row:
            raise NotFoundError(f"{label} não encontrado.")
        return row

    def _ensure_name_free(self, model, name: str, label: str, item_id: Optional[int] = None):
        existing = self.db.query(model).filter(func.lower(model.name) == name.lower()).first()
        if existing and existing.id != item_id:
            raise UniquenessError(f"Já existe um {label.lower()} com este nome.", "name")

    def _save_named(self, model, schema, name: str, label: str, item_id: Optional[int] = None):
        self._ensure_name_free(model, name, label, item_id)
        if item_id is None:
            row = model(name=name)
            self.db.add(row)
        else:
            row = self._get_named_row(model, item_id, label)
            row.name = name
        with self._write("name", f"Já existe um {label.lower()} com este nome."):
            pass
        self.db.refresh(row)
        return schema.model_validate(row)

    def list_environment_types(self) -> List[schemas.EnvironmentType]:
        return self._list_named(models.EnvironmentType, schemas.EnvironmentType)

    def create_environment_type(self, name: str) -> schemas.EnvironmentType:
        return self._save_named(models.EnvironmentType, schemas.EnvironmentType, name, "Tipo de ambiente")

    def update_environment_type(self, type_id: int, name: str) -> schemas.EnvironmentType:
        return self._save_named(models.EnvironmentType, schemas.EnvironmentType, name, "Tipo de ambiente", type_id)

    def delete_environment_type(self, type_id: int) -> None:
        row = self._get_named_row(models.EnvironmentType, type_id, "Tipo de ambiente")
        message = "Não é possível excluir este tipo, pois está em uso por ambientes."
        if self.db.query(models.Environment).filter(models.Environment.type_id == type_id).count():
            raise ReferenceInUseError(message)
        with self._write(in_use_message=message):
            self.db.delete(row)

    def list_resources(self) -> List[schemas.Resource]:
        return self._list_named(models.Resource, schemas.Resource)

    def create_resource(self, name: str) -> schemas.Resource:
        return self._save_named(models.Resource, schemas.Resource, name, "Recurso")

    def update_resource(self, resource_id: int, name: str) -> schemas.Resource:
        return self._save_named(models.Resource, schemas.Resource, name, "Recurso", resource_id)

    def delete_resource(self, resource_id: int) -> None:
        row = self._get_named_row(models.Resource, resource_id, "Recurso")
        message = "Não é possível excluir este recurso, pois está em uso por ambientes."
        if row.environments:
            raise ReferenceInUseError(message)
        with self._write(in_use_message=message):
            self.db.delete(row)

    # --- Ambientes ---

    def _environment_query(self):
        return self.db.query(models.Environment).options(
            joinedload(models.Environment.type),
            selectinload(models.Environment.resources),
        )

    def _get_environment_row(self, environment_id: int) -> models.Environment:
        env = self._environment_query().filter(models.Environment.id == environment_id).first()
        if not env:
            raise NotFoundError("Ambiente não encontrado.")
        return env

    def _resolve_resources(self, resource_ids: Iterable[int]) -> List[models.Resource]:
        wanted = set(resource_ids)
        if not wanted:
            return []
        rows = self.db.query(models.Resource).filter(models.Resource.id.in_(wanted)).all()
        missing = wanted - {r.id for r in rows}
        if missing:
            raise NotFoundError(f"Recurso(s) não encontrado(s): {sorted(missing)}.")
        return rows

    def _ensure_type_exists(self, type_id: int):
        self._get_named_row(models.EnvironmentType, type_id, "Tipo de ambiente")

    def list_environments(self) -> List[schemas.Environment]:
        rows = self._environment_query().order_by(models.Environment.name).all()
        return [schemas.Environment.from_row(row) for row in rows]

    def get_environment(self, environment_id: int) -> schemas.Environment:
        return schemas.Environment.from_row(self._get_environment_row(environment_id))

    def create_environment(self, env_in: schemas.EnvironmentCreate) -> schemas.Environment:
        self._ensure_name_free(models.Environment, env_in.name, "Ambiente")
        self._ensure_type_exists(env_in.type_id)
        env = models.Environment(
            name=env_in.name,
            location=env_in.location,
            type_id=env_in.type_id,
            resources=self._resolve_resources(env_in.resource_ids),
        )
        with self._write("name", "Já existe um ambiente com este nome."):
            self.db.add(env)
        return self.get_environment(env.id)

    def update_environment(self, environment_id: int, env_in: schemas.EnvironmentUpdate) -> schemas.Environment:
        env = self._get_environment_row(environment_id)
        update_data = env_in.model_dump(exclude_unset=True, exclude={"resource_ids"})
        if update_data.get("name"):
            self._ensure_name_free(models.Environment, update_data["name"], "Ambiente", environment_id)
        if update_data.get("type_id"):
            self._ensure_type_exists(update_data["type_id"])

        for key, value in update_data.items():
            if key == "location" or value is not None:
                setattr(env, key, value)
        # Associações de recursos são recriadas por inteiro, nunca comparadas item a item
        if env_in.resource_ids is not None:
            env.resources = self._resolve_resources(env_in.resource_ids)

        with self._write("name", "Já existe um ambiente com este nome."):
            pass
        self.db.expire(env)
        return self.get_environment(environment_id)

    def delete_environment(self, environment_id: int) -> None:
        env = self._get_environment_row(environment_id)
        message = "Não é possível excluir este ambiente, pois existem reservas associadas a ele."
        if self.db.query(models.Reservation).filter(models.Reservation.environment_id == environment_id).count():
            raise ReferenceInUseError(message)
        with self._write(in_use_message=message):
            self.db.delete(env)

    # --- Reservas ---

    def _reservation_query(self):
        return self.db.query(models.Reservation).options(
            joinedload(models.Reservation.user),
            joinedload(models.Reservation.environment),
        )

    def _get_reservation_row(self, reservation_id: int) -> models.Reservation:
        row = self._reservation_query().filter(models.Reservation.id == reservation_id).first()
        if not row:
            raise NotFoundError("Reserva não encontrada.")
        return row

    def get_reservation(self, reservation_id: int) -> schemas.Reservation:
        return schemas.Reservation.from_row(self._get_reservation_row(reservation_id))

    def list_reservations(self, environment_id: Optional[int] = None, user_id: Optional[int] = None,
                          window: Optional[Interval] = None,
                          environment_ids: Optional[Iterable[int]] = None) -> List[schemas.Reservation]:
        """``window`` seleciona as reservas cujo intervalo sobrepõe a janela."""
        query = self._reservation_query()
        if environment_id is not None:
            query = query.filter(models.Reservation.environment_id == environment_id)
        if environment_ids is not None:
            query = query.filter(models.Reservation.environment_id.in_(set(environment_ids)))
        if user_id is not None:
            query = query.filter(models.Reservation.user_id == user_id)
        if window is not None:
            query = query.filter(
                models.Reservation.start_time < window.end,
                models.Reservation.end_time > window.start,
            )
        rows = query.order_by(models.Reservation.start_time, models.Reservation.id).all()
        return [schemas.Reservation.from_row(row) for row in rows]

    def ensure_references(self, proposals: Iterable[Proposal]) -> None:
        """Ambientes e usuários das propostas precisam existir antes da escrita."""
        proposals = list(proposals)
        env_ids = {p.environment_id for p in proposals}
        user_ids = {p.user_id for p in proposals}
        found_envs = {row.id for row in self.db.query(models.Environment.id).filter(models.Environment.id.in_(env_ids))}
        if env_ids - found_envs:
            raise NotFoundError("Ambiente não encontrado.")
        found_users = {row.id for row in self.db.query(models.User.id).filter(models.User.id.in_(user_ids))}
        if user_ids - found_users:
            raise NotFoundError("Usuário não encontrado.")

    def create_reservations(self, proposals: List[Proposal]) -> List[schemas.Reservation]:
        """Grava todas as propostas numa única transação: ou todas entram, ou nenhuma."""
        rows = [
            models.Reservation(
                environment_id=p.environment_id,
                user_id=p.user_id,
                start_time=p.start,
                end_time=p.end,
                status='approved',
            )
            for p in proposals
        ]
        with self._write():
            self.db.add_all(rows)
            self.db.flush()
        return [self.get_reservation(row.id) for row in rows]

    def update_reservation(self, reservation_id: int, proposal: Proposal) -> schemas.Reservation:
        row = self._get_reservation_row(reservation_id)
        row.environment_id = proposal.environment_id
        row.user_id = proposal.user_id
        row.start_time = proposal.start
        row.end_time = proposal.end
        with self._write():
            self.db.flush()
        self.db.expire(row)
        return self.get_reservation(reservation_id)

    def delete_reservation(self, reservation_id: int) -> None:
        row = self._get_reservation_row(reservation_id)
        with self._write():
            self.db.delete(row)
