# reservas/services/backup_service.py
"""
Backup e restauração em JSON: um despejo bruto das seis tabelas.

A restauração apaga tudo e reinsere em ordem de dependência (tipos, recursos e usuários;
depois ambientes; depois as associações; por fim as reservas), numa única transação.
"""
from datetime import datetime

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy import exc, select, text
from sqlalchemy.orm import Session

from reservas.core.exceptions import BackupFormatError
from reservas.db import models, schemas
from reservas.utils.logger import logger

# Ordem de inserção; a exclusão usa a ordem inversa
RESTORE_ORDER = (
    ("environment_types", models.EnvironmentType.__table__),
    ("resources", models.Resource.__table__),
    ("users", models.User.__table__),
    ("environments", models.Environment.__table__),
    ("environment_resources", models.environment_resources),
    ("reservations", models.Reservation.__table__),
)


def export_backup(db: Session) -> dict:
    data = {}
    for key, table in RESTORE_ORDER:
        rows = db.execute(select(table)).mappings().all()
        data[key] = [dict(row) for row in rows]
    return jsonable_encoder(schemas.BackupData(**data))


def _coerce_row(table, row: dict) -> dict:
    """Descarta chaves desconhecidas e converte timestamps ISO de volta para datetime."""
    coerced = {}
    for column in table.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if isinstance(column.type, models.UTCDateTime) and isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                raise BackupFormatError(f"Data inválida em '{table.name}.{column.name}': {value}")
        coerced[column.name] = value
    return coerced


def _reset_sequences(db: Session):
    if db.get_bind().dialect.name != "postgresql":
        return
    for key, table in RESTORE_ORDER:
        if "id" not in table.columns:
            continue
        db.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table.name}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table.name}), 0) + 1, false)"
        ))


def restore_backup(db: Session, payload: dict) -> dict:
    try:
        backup = schemas.BackupData(**payload)
    except (ValidationError, TypeError) as e:
        raise BackupFormatError(f"Arquivo de backup inválido: {e}")

    counts = {}
    try:
        for key, table in reversed(RESTORE_ORDER):
            db.execute(table.delete())
        for key, table in RESTORE_ORDER:
            rows = [_coerce_row(table, row) for row in getattr(backup, key)]
            if rows:
                db.execute(table.insert(), rows)
            counts[key] = len(rows)
        _reset_sequences(db)
        db.commit()
    except exc.DBAPIError as e:
        db.rollback()
        logger.error(f"Falha ao restaurar backup: {e}")
        raise BackupFormatError(f"Os dados do backup violam as regras do banco: {e.orig}")
    except Exception:
        db.rollback()
        raise

    logger.warning(f"Backup restaurado: {counts}")
    return counts
