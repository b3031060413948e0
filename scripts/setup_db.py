import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Raiz do projeto no caminho de busca e .env carregado antes de importar o pacote
project_root = Path(__file__).resolve().parent.parent
sys.path.append(str(project_root))
load_dotenv(dotenv_path=project_root / '.env')

from reservas.db.models import Base, Environment, EnvironmentType, Resource, User
from reservas.db.session import SessionLocal, engine, check_database_connection
from reservas.core.security import get_password_hash
from reservas.utils.logger import logger

ENVIRONMENT_TYPES = ["Sala de Aula", "Laboratório", "Auditório", "Sala de Reunião"]
RESOURCES = ["Projetor", "Quadro Branco", "Computadores", "Internet Rápida", "Sistema de Som", "Palco", 'TV 60"']
ENVIRONMENTS = [
    ("Sala de Aula 101", "Sala de Aula", "Bloco A, 1º Andar", ["Projetor", "Quadro Branco"]),
    ("Laboratório de Informática B", "Laboratório", "Bloco C, Térreo", ["Computadores", "Projetor", "Internet Rápida"]),
    ("Auditório Principal", "Auditório", "Prédio Central", ["Projetor", "Sistema de Som", "Palco"]),
    ("Sala de Reunião 3", "Sala de Reunião", "Bloco Administrativo", ['TV 60"', "Quadro Branco"]),
]


def seed_catalog(db):
    """Insere tipos, recursos e ambientes de exemplo somente em um banco vazio."""
    if db.query(EnvironmentType).count() or db.query(Environment).count():
        logger.info("Setup: catálogo já possui dados, seed ignorado.")
        return

    types = {name: EnvironmentType(name=name) for name in ENVIRONMENT_TYPES}
    resources = {name: Resource(name=name) for name in RESOURCES}
    db.add_all(list(types.values()) + list(resources.values()))

    for name, type_name, location, resource_names in ENVIRONMENTS:
        db.add(Environment(
            name=name,
            location=location,
            type=types[type_name],
            resources=[resources[r] for r in resource_names],
        ))
    db.commit()
    logger.info(f"Setup: {len(ENVIRONMENTS)} ambientes de exemplo criados.")


def seed_admin(db):
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        logger.info("Setup: ADMIN_EMAIL/ADMIN_PASSWORD não definidos, nenhum admin criado.")
        return
    if db.query(User).filter(User.email == email).first():
        return
    db.add(User(name=os.getenv("ADMIN_NAME", "Administrador"), email=email,
                password_hash=get_password_hash(password), role='admin'))
    db.commit()
    logger.info(f"Setup: usuário admin '{email}' criado.")


def setup_database():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_catalog(db)
        seed_admin(db)
    except Exception as e:
        logger.error(f"Erro no setup do banco: {e}")
        db.rollback()
        raise
    finally:
        db.close()

    if check_database_connection():
        print("\nSUCESSO: banco de dados pronto.")
    else:
        print("\nERRO: o banco continua inacessível. Verifique DATABASE_URL.")
        sys.exit(1)

if __name__ == "__main__":
    setup_database()
