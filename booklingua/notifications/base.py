# notifications/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class EmailMessage:
    from_address: str
    to:           str
    subject:      str
    html:         str


class EmailSender(ABC):
    """
    Contrato del remitente transaccional.
    Para el pipeline es fire-and-forget: solo importa que no lance.
    """

    @abstractmethod
    def send(self, message: EmailMessage) -> Optional[str]:
        """Envía el email. Devuelve el id del proveedor si lo hay."""
        ...
