# reservas/services/email_service.py
from zoneinfo import ZoneInfo

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pathlib import Path

from reservas.core.config import settings
from reservas.db import schemas
from reservas.utils.logger import logger


class EmailService:
    template_env = Environment(
        loader=FileSystemLoader(Path(__file__).parent / 'email_templates'),
        autoescape=select_autoescape(['html'])
    )

    @classmethod
    def connection_config(cls) -> ConnectionConfig:
        return ConnectionConfig(
            MAIL_USERNAME=settings.SMTP_USER,
            MAIL_PASSWORD=settings.SMTP_PASS,
            MAIL_FROM=settings.FROM_EMAIL,
            MAIL_PORT=settings.SMTP_PORT,
            MAIL_SERVER=settings.SMTP_HOST,
            MAIL_STARTTLS=True,
            MAIL_SSL_TLS=False,
            USE_CREDENTIALS=bool(settings.SMTP_USER),
            VALIDATE_CERTS=True
        )

    @classmethod
    def render(cls, template_name: str, template_body: dict) -> str:
        return cls.template_env.get_template(template_name).render(template_body)

    @classmethod
    async def send_email(cls, subject: str, recipients: list, template_name: str, template_body: dict):
        if not settings.MAIL_ENABLED:
            logger.info(f"Envio de e-mail desabilitado (MAIL_ENABLED=False). '{subject}' não enviado.")
            return
        # Falha de e-mail não pode desfazer a reserva já gravada: só registra
        try:
            valid_recipients = [email for email in recipients if email]
            if not valid_recipients:
                logger.warning(f"Nenhum destinatário válido para o email '{subject}'. Pulando envio.")
                return
            message = MessageSchema(
                subject=subject,
                recipients=valid_recipients,
                body=cls.render(template_name, template_body),
                subtype="html"
            )
            fm = FastMail(cls.connection_config())
            await fm.send_message(message)
            logger.info(f"Email '{subject}' enviado para {valid_recipients}")
        except Exception as e:
            logger.error(f"Falha ao enviar email '{subject}' para {recipients}: {e}")

    @staticmethod
    def _template_body(reservation: schemas.Reservation) -> dict:
        tz = ZoneInfo(settings.TIMEZONE)
        start = reservation.start_time.astimezone(tz)
        end = reservation.end_time.astimezone(tz)
        return {
            "nome_usuario": reservation.user_name,
            "ambiente": reservation.environment_name,
            "local": reservation.environment_location or "Não informado",
            "data": start.strftime('%d/%m/%Y'),
            "inicio": start.strftime('%H:%M'),
            "fim": end.strftime('%H:%M'),
        }

    @classmethod
    async def send_reservation_confirmation(cls, reservations: list):
        for reservation in reservations:
            subject = f"Confirmação de Reserva: {reservation.environment_name}"
            await cls.send_email(subject, [reservation.user_email], "confirmacao_reserva.html",
                                 cls._template_body(reservation))

    @classmethod
    async def send_cancellation_notice(cls, reservation: schemas.Reservation):
        subject = f"Reserva Cancelada: {reservation.environment_name}"
        await cls.send_email(subject, [reservation.user_email], "cancelamento_reserva.html",
                             cls._template_body(reservation))
