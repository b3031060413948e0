# reservas/core/exceptions.py
"""
Taxonomia de erros do sistema de reservas.

Os erros de agendamento (validação e conflito) carregam a ``Rejection`` produzida pelo
motor de disponibilidade, de modo que a API tenha um único formato para exibir, seja o
conflito detectado na checagem em memória ou pela restrição do banco.
"""


class ReservaError(Exception):
    reason = "erro"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BookingRejectedError(ReservaError):
    """Base dos erros que encapsulam uma Rejection do motor de disponibilidade."""

    def __init__(self, rejection):
        super().__init__(rejection.message)
        self.rejection = rejection
        self.reason = rejection.reason.value


class BookingValidationError(BookingRejectedError):
    pass


class SlotConflictError(BookingRejectedError):
    @property
    def conflict(self):
        return self.rejection.conflict


class ReferenceInUseError(ReservaError):
    reason = "em_uso"


class UniquenessError(ReservaError):
    reason = "duplicado"

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class NotFoundError(ReservaError):
    reason = "nao_encontrado"


class PermissionDeniedError(ReservaError):
    reason = "acesso_negado"


class StorageUnavailableError(ReservaError):
    reason = "servico_indisponivel"


class BackupFormatError(ReservaError):
    reason = "backup_invalido"
