from pydantic_settings import BaseSettings
from pydantic import EmailStr
from typing import List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Reserva de Ambientes"
    API_V1_STR: str = "/api/v1"
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_SERVER: str = ""
    DB_PORT: str = "5432"
    DB_NAME: str = ""
    DATABASE_URL: str = ""

    def __init__(self, **values):
        super().__init__(**values)
        if not self.DATABASE_URL:
            if self.DB_SERVER and self.DB_NAME:
                self.DATABASE_URL = f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_SERVER}:{self.DB_PORT}/{self.DB_NAME}"
            else:
                self.DATABASE_URL = "sqlite:///./reservas.db"
        # Provedores hospedados costumam entregar postgres://, o SQLAlchemy espera postgresql://
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

    JWT_SECRET: str = "reservas-insecure-dev-key-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    RATE_LIMIT: str = "200/minute"
    LOGIN_RATE_LIMIT: str = "10/minute"

    MAIL_ENABLED: bool = False
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    FROM_EMAIL: EmailStr = "no-reply@reservas.com.br"

    LOG_LEVEL: str = "INFO"
    # Vazio desliga o arquivo de log (só console)
    LOG_DIR: str = "logs"

    TIMEZONE: str = "America/Sao_Paulo"
    BACKUP_MAX_SIZE: int = 20 * 1024 * 1024
    # Limite de semanas de uma reserva semanal (um ano letivo)
    MAX_RECURRENCE_WEEKS: int = 52

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
