import sys
from pathlib import Path
from getpass import getpass
from dotenv import load_dotenv
from pydantic import ValidationError

# Raiz do projeto no caminho de busca e .env carregado antes de importar o pacote
script_dir = Path(__file__).resolve().parent
project_root = script_dir.parent
sys.path.append(str(project_root))
load_dotenv(dotenv_path=project_root / '.env')

from reservas.db import schemas
from reservas.db.session import SessionLocal
from reservas.core.exceptions import ReservaError
from reservas.services.store import EntityStore
from reservas.utils.logger import logger

def create_admin_user():
    """
    Script para criar um usuário administrador interativamente.
    """
    db = SessionLocal()
    try:
        print("--- Criação de Usuário Administrador ---")

        name = input("Nome completo do admin: ")
        email = input("Email do admin: ")

        password = getpass("Senha (mínimo 6 caracteres): ")
        if len(password) < 6:
            logger.error("A senha informada é muito curta. Abortando.")
            print("\nERRO: A senha precisa ter no mínimo 6 caracteres.")
            return

        password_confirm = getpass("Confirme a senha: ")
        if password != password_confirm:
            logger.error("As senhas não coincidem. Abortando.")
            print("\nERRO: As senhas não coincidem.")
            return

        user_in = schemas.UserAdminCreate(name=name, email=email, password=password, role='admin')
        user = EntityStore(db).create_user(user_in)

        logger.info(f"Usuário administrador '{user.email}' criado com sucesso!")
        print(f"\nSUCESSO: Usuário administrador '{user.email}' foi criado.")

    except ReservaError as e:
        logger.error(f"Não foi possível criar o admin: {e.message}")
        print(f"\nERRO: {e.message}")
    except ValidationError as e:
        logger.error(f"Dados inválidos para o admin: {e}")
        print("\nERRO: Verifique o nome e o e-mail informados.")
    finally:
        db.close()

if __name__ == "__main__":
    create_admin_user()
