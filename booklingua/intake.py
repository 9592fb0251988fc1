# booklingua/intake.py
import logging
from dataclasses import dataclass
from typing import Optional

from booklingua.languages import LanguageTable
from booklingua.storage.models import Tier
from booklingua.storage.repository import Repository
from booklingua.workflow.events import TranslateRequested
from booklingua.workflow.trigger import JobTrigger

logger = logging.getLogger(__name__)


@dataclass
class SubmittedOrder:
    order_id: int
    job_ids:  list[str]


class OrderIntake:
    """
    Frontera de entrada: "pedido pagado → evento".
    Crea el pedido PENDING con su manuscrito y emite book/translate.requested.
    El cobro y la extracción de texto ocurren antes, fuera de este sistema.
    """

    def __init__(self, repo: Repository, trigger: JobTrigger, languages: LanguageTable):
        self._repo      = repo
        self._trigger   = trigger
        self._languages = languages

    def submit(
        self,
        email:                str,
        author_name:          str,
        book_title:           str,
        languages:            list[str],
        content:              str,
        tier:                 Tier = Tier.SMALL,
        file_format:          str = "txt",
        genre:                Optional[str] = None,
        upsells:              Optional[list[str]] = None,
        special_instructions: Optional[str] = None,
        amount_paid:          float = 0.0,
    ) -> SubmittedOrder:
        """
        Valida los idiomas contra la tabla antes de crear nada:
        un código desconocido lanza UnknownLanguageError y no deja rastro.
        Los idiomas son un conjunto: "es" y "ES" repetidos cuentan una vez.
        """
        codes = list(dict.fromkeys(self._languages.get(code).code for code in languages))
        if not codes:
            raise ValueError("Un pedido necesita al menos un idioma de destino")
        if not content.strip():
            raise ValueError("El manuscrito está vacío")

        order_id = self._repo.create_order(
            email                = email,
            author_name          = author_name,
            book_title           = book_title,
            languages            = codes,
            tier                 = tier,
            file_format          = file_format,
            word_count           = len(content.split()),
            genre                = genre,
            upsells              = upsells,
            special_instructions = special_instructions,
            amount_paid          = amount_paid,
        )
        self._repo.save_original_file(order_id, content)
        logger.info("Pedido %d creado (%s)", order_id, ", ".join(codes))

        job_ids = self._trigger.send(TranslateRequested(order_id=order_id))
        return SubmittedOrder(order_id=order_id, job_ids=job_ids)
