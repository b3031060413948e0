# reservas/api/endpoints/backup.py
import json
from datetime import datetime

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from reservas.api.deps import get_current_admin, get_db
from reservas.core.config import settings
from reservas.core.exceptions import BackupFormatError
from reservas.db import schemas
from reservas.services.backup_service import export_backup, restore_backup
from reservas.utils.logger import logger

router = APIRouter()

@router.get("/", summary="Exporta todos os dados em JSON")
def download_backup(
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_admin)
):
    data = export_backup(db)
    filename = f"backup_reservas_{datetime.now():%Y-%m-%d}.json"
    logger.info(f"Admin '{current_user.email}' exportou um backup.")
    return JSONResponse(
        content=data,
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )

@router.post("/restaurar", summary="Apaga todos os dados e restaura um backup JSON")
async def upload_backup(
    arquivo: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_admin)
):
    contents = await arquivo.read()
    if len(contents) > settings.BACKUP_MAX_SIZE:
        raise BackupFormatError("Arquivo de backup muito grande.")
    try:
        payload = json.loads(contents)
    except ValueError:
        raise BackupFormatError("O arquivo enviado não é um JSON válido.")
    if not isinstance(payload, dict):
        raise BackupFormatError("O backup deve ser um objeto JSON com as seis coleções.")

    logger.warning(f"Admin '{current_user.email}' iniciou a restauração do backup '{arquivo.filename}'.")
    counts = restore_backup(db, payload)
    return {"message": "Backup restaurado com sucesso.", "registros": counts}
