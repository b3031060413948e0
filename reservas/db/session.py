# reservas/db/session.py
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from reservas.core.config import settings
from reservas.utils.logger import logger


def _sanitize_postgres_url(url: str) -> str:
    """Codifica usuário e senha da URL para que caracteres especiais não quebrem o DSN."""
    parsed = urlsplit(url)
    if not parsed.scheme.startswith("postgresql"):
        return url
    if "@" not in parsed.netloc:
        return url

    userinfo, hostinfo = parsed.netloc.rsplit("@", 1)
    has_password = ":" in userinfo
    username, password = userinfo.split(":", 1) if has_password else (userinfo, "")

    safe_username = quote(unquote(username), safe="")
    safe_password = quote(unquote(password), safe="")
    safe_userinfo = f"{safe_username}:{safe_password}" if has_password else safe_username
    return urlunsplit((parsed.scheme, f"{safe_userinfo}@{hostinfo}", parsed.path, parsed.query, parsed.fragment))


DATABASE_URL = _sanitize_postgres_url(settings.DATABASE_URL)

engine_kwargs = {"pool_pre_ping": True}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)

if engine.dialect.name == "sqlite":
    # O SQLite só respeita chaves estrangeiras com o pragma ligado em cada conexão
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PROBE_TABLES = ("users", "environment_types", "resources", "environments", "environment_resources", "reservations")


def check_database_connection() -> bool:
    """
    Consulta cada tabela uma vez. Se alguma falhar, o banco está inacessível ou
    o esquema está desatualizado e o operador precisa rodar scripts/setup_db.py.
    """
    try:
        with engine.connect() as conn:
            for table in PROBE_TABLES:
                conn.execute(text(f"SELECT 1 FROM {table} LIMIT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Teste de conexão com o banco de dados falhou: {e}")
        return False
    return True
