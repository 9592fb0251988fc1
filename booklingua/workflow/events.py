# workflow/events.py
from dataclasses import dataclass
from numbers import Integral
from typing import ClassVar

from booklingua.errors import InvalidEventError


@dataclass(frozen=True)
class TranslateRequested:
    """Evento de entrada del pipeline: el pedido ya está pagado."""
    name: ClassVar[str] = "book/translate.requested"

    order_id: int

    @property
    def key(self) -> str:
        """Clave de idempotencia: un trabajo por pedido."""
        return str(self.order_id)

    def to_payload(self) -> dict:
        return {"order_id": self.order_id}

    @classmethod
    def from_payload(cls, payload: dict) -> "TranslateRequested":
        """Valida el payload en la frontera; nunca pasa un dict opaco hacia dentro."""
        if not isinstance(payload, dict):
            raise InvalidEventError(f"{cls.name}: el payload debe ser un objeto")

        order_id = payload.get("order_id", payload.get("orderId"))
        if isinstance(order_id, str) and order_id.strip().isdigit():
            order_id = int(order_id)

        if not isinstance(order_id, Integral) or isinstance(order_id, bool) or order_id <= 0:
            raise InvalidEventError(
                f"{cls.name}: order_id inválido: {order_id!r}"
            )
        return cls(order_id=int(order_id))
