# storage/repository.py
import json
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone

from booklingua.storage.db import get_connection, init_schema
from booklingua.storage.models import (
    FileType, JobStatus, OrderStatus, Tier,
    StoredFile, StoredJobRun, StoredOrder, StoredStep,
)

logger = logging.getLogger(__name__)


class Repository:
    """
    Única interfaz entre el resto de la aplicación y SQLite.
    Recibe un db_path para facilitar el testing con :memory:.
    """

    def __init__(self, db_path: str | None = None):
        self._conn = get_connection(db_path)
        init_schema(self._conn)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        email:                str,
        author_name:          str,
        book_title:           str,
        languages:            list[str],
        tier:                 Tier = Tier.SMALL,
        file_format:          str = "txt",
        word_count:           int = 0,
        genre:                str | None = None,
        upsells:              list[str] | None = None,
        special_instructions: str | None = None,
        amount_paid:          float = 0.0,
    ) -> int:
        """
        Inserta un pedido nuevo en estado PENDING y devuelve su id.
        languages queda fijado aquí; el pipeline nunca lo modifica.
        Los idiomas repetidos se descartan conservando el orden.
        """
        languages = list(dict.fromkeys(languages))
        if not languages:
            raise ValueError("Un pedido necesita al menos un idioma de destino")

        created_at = _now()
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO orders (
                    email, author_name, book_title, word_count, tier, file_format,
                    languages, genre, upsells, special_instructions, amount_paid,
                    status, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (email, author_name, book_title, word_count, tier.value, file_format,
                 json.dumps(languages), genre, json.dumps(list(upsells or [])),
                 special_instructions, amount_paid,
                 OrderStatus.PENDING.value, created_at),
            )
        return cursor.lastrowid  # type: ignore[return-value]

    def get_order(self, order_id: int) -> StoredOrder | None:
        row = self._conn.execute(
            "SELECT * FROM orders WHERE id = ?", (order_id,)
        ).fetchone()
        return self._row_to_order(row) if row else None

    def update_order_status(self, order_id: int, status: OrderStatus) -> bool:
        """
        Avanza el estado del pedido solo si es un avance real.
        El UPDATE condicional hace que la transición sea atómica: repetir el
        mismo estado o intentar retroceder no escribe nada y devuelve False.
        completed_at se fija en la misma sentencia que el paso a COMPLETED.
        """
        predecessors = [s.value for s in OrderStatus if s.can_advance_to(status)]
        if not predecessors:
            return False

        placeholders = ", ".join("?" for _ in predecessors)
        completed_at = _now() if status == OrderStatus.COMPLETED else None

        with self._conn:
            cursor = self._conn.execute(
                f"""
                UPDATE orders
                SET status = ?, completed_at = COALESCE(completed_at, ?)
                WHERE id = ? AND status IN ({placeholders})
                """,
                (status.value, completed_at, order_id, *predecessors),
            )

        if cursor.rowcount == 0:
            current = self.get_order(order_id)
            if current is not None and current.status != status:
                logger.warning(
                    "Pedido %d ya está en %s; se ignora el paso a %s",
                    order_id, current.status.value, status.value,
                )
            return False
        return True

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def save_original_file(self, order_id: int, content: str) -> int:
        """
        Guarda el manuscrito original del pedido.
        Si ya existe lanza IntegrityError.
        """
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO files (order_id, type, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (order_id, FileType.ORIGINAL.value, content, _now()),
            )
        return cursor.lastrowid  # type: ignore[return-value]

    def get_original_file(self, order_id: int) -> StoredFile | None:
        row = self._conn.execute(
            "SELECT * FROM files WHERE order_id = ? AND type = ?",
            (order_id, FileType.ORIGINAL.value),
        ).fetchone()
        return self._row_to_file(row) if row else None

    def insert_translated_file(
        self,
        order_id:         int,
        language:         str,
        content:          str,
        original_content: str,
        marker_grammar:   str | None = None,
    ) -> StoredFile:
        """
        Inserta la traducción de un idioma. Usa INSERT OR IGNORE sobre el
        índice único (order_id, language): si el paso se reintenta o el
        trabajo se relanza, devuelve la fila existente en vez de duplicarla.
        """
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO files
                    (order_id, type, language, content, original_content,
                     marker_grammar, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (order_id, FileType.TRANSLATED.value, language,
                 content, original_content, marker_grammar, _now()),
            )

        if cursor.rowcount == 0:
            logger.info(
                "Traducción %s del pedido %d ya existía — no se duplica",
                language, order_id,
            )

        stored = self.get_translated_file(order_id, language)
        if stored is None:
            raise sqlite3.IntegrityError(
                f"No se pudo guardar la traducción {language} del pedido {order_id}"
            )
        return stored

    def get_translated_file(self, order_id: int, language: str) -> StoredFile | None:
        row = self._conn.execute(
            "SELECT * FROM files WHERE order_id = ? AND type = ? AND language = ?",
            (order_id, FileType.TRANSLATED.value, language),
        ).fetchone()
        return self._row_to_file(row) if row else None

    def get_translated_files(self, order_id: int) -> list[StoredFile]:
        rows = self._conn.execute(
            "SELECT * FROM files WHERE order_id = ? AND type = ? ORDER BY id ASC",
            (order_id, FileType.TRANSLATED.value),
        ).fetchall()
        return [self._row_to_file(r) for r in rows]

    # ------------------------------------------------------------------
    # Job runs
    # ------------------------------------------------------------------

    def create_job_run(
        self,
        job_id:      str,
        function_id: str,
        event_name:  str,
        payload:     dict,
    ) -> bool:
        """
        Registra una ejecución en QUEUED. Devuelve False si el job_id ya
        existía: un pedido solo dispara un trabajo.
        """
        now = _now()
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO job_runs
                    (job_id, function_id, event_name, payload, status,
                     attempts, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (job_id, function_id, event_name, json.dumps(payload),
                 JobStatus.QUEUED.value, now, now),
            )
        return cursor.rowcount > 0

    def get_job_run(self, job_id: str) -> StoredJobRun | None:
        row = self._conn.execute(
            "SELECT * FROM job_runs WHERE job_id = ?", (job_id,)
        ).fetchone()
        return self._row_to_job_run(row) if row else None

    def get_queued_job_runs(
        self,
        limit:         int | None = None,
        lease_seconds: float | None = None,
    ) -> list[StoredJobRun]:
        """
        Trabajos listos para un worker: los QUEUED y, con lease_seconds,
        también los RUNNING cuyo lease venció (el proceso que los tenía
        murió sin cerrarlos).
        """
        where, params = _runnable_clause(lease_seconds)
        query = f"SELECT * FROM job_runs WHERE {where} ORDER BY created_at ASC, job_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)
        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_job_run(r) for r in rows]

    def claim_job_run(
        self,
        job_id:        str,
        force:         bool = False,
        lease_seconds: float | None = None,
    ) -> bool:
        """
        Pasa la ejecución a RUNNING. Sin force solo reclama las QUEUED (y las
        RUNNING con el lease vencido), así dos workers vivos nunca ejecutan
        el mismo trabajo a la vez.
        """
        query = """
            UPDATE job_runs
            SET status = ?, attempts = attempts + 1, updated_at = ?
            WHERE job_id = ?
        """
        params: tuple = (JobStatus.RUNNING.value, _now(), job_id)
        if not force:
            where, where_params = _runnable_clause(lease_seconds)
            query += f" AND ({where})"
            params += where_params

        with self._conn:
            cursor = self._conn.execute(query, params)
        return cursor.rowcount > 0

    def touch_job_run(self, job_id: str) -> None:
        """Renueva el lease de un trabajo RUNNING."""
        with self._conn:
            self._conn.execute(
                "UPDATE job_runs SET updated_at = ? WHERE job_id = ? AND status = ?",
                (_now(), job_id, JobStatus.RUNNING.value),
            )

    def finish_job_run(
        self,
        job_id:     str,
        status:     JobStatus,
        last_error: str | None = None,
    ) -> None:
        with self._conn:
            self._conn.execute(
                """
                UPDATE job_runs SET status = ?, last_error = ?, updated_at = ?
                WHERE job_id = ?
                """,
                (status.value, last_error, _now(), job_id),
            )

    # ------------------------------------------------------------------
    # Steps (memoización)
    # ------------------------------------------------------------------

    def get_step(self, job_id: str, step_id: str) -> StoredStep | None:
        row = self._conn.execute(
            "SELECT * FROM job_steps WHERE job_id = ? AND step_id = ?",
            (job_id, step_id),
        ).fetchone()
        return self._row_to_step(row) if row else None

    def get_steps(self, job_id: str) -> list[StoredStep]:
        rows = self._conn.execute(
            "SELECT * FROM job_steps WHERE job_id = ? ORDER BY completed_at ASC, rowid ASC",
            (job_id,),
        ).fetchall()
        return [self._row_to_step(r) for r in rows]

    def save_step(self, job_id: str, step_id: str, output) -> None:
        """
        Registra un paso completado. El primer resultado gana: un paso
        ya registrado nunca se sobrescribe.
        """
        with self._conn:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO job_steps (job_id, step_id, output_json, completed_at)
                VALUES (?, ?, ?, ?)
                """,
                (job_id, step_id, json.dumps(output), _now()),
            )

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------

    def add_token_usage(self, model: str, tokens: int) -> None:
        """
        Upsert: si ya existe el registro de hoy lo incrementa,
        si no existe lo crea.
        """
        today = date.today().isoformat()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO quota_usage (model, date, tokens_used)
                VALUES (?, ?, ?)
                ON CONFLICT (model, date)
                DO UPDATE SET tokens_used = tokens_used + excluded.tokens_used
                """,
                (model, today, tokens),
            )

    def get_token_usage_today(self, model: str) -> int:
        today = date.today().isoformat()
        row = self._conn.execute(
            "SELECT tokens_used FROM quota_usage WHERE model = ? AND date = ?",
            (model, today),
        ).fetchone()
        return row["tokens_used"] if row else 0

    # ------------------------------------------------------------------
    # Mapeo de rows a dataclasses
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_order(row: sqlite3.Row) -> StoredOrder:
        return StoredOrder(
            id=row["id"],
            email=row["email"],
            author_name=row["author_name"],
            book_title=row["book_title"],
            word_count=row["word_count"],
            tier=Tier(row["tier"]),
            file_format=row["file_format"],
            languages=json.loads(row["languages"]),
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
            genre=row["genre"],
            upsells=json.loads(row["upsells"] or "[]"),
            special_instructions=row["special_instructions"],
            amount_paid=row["amount_paid"],
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> StoredFile:
        return StoredFile(
            id=row["id"],
            order_id=row["order_id"],
            type=FileType(row["type"]),
            content=row["content"],
            created_at=row["created_at"],
            language=row["language"],
            original_content=row["original_content"],
            marker_grammar=row["marker_grammar"],
        )

    @staticmethod
    def _row_to_job_run(row: sqlite3.Row) -> StoredJobRun:
        return StoredJobRun(
            job_id=row["job_id"],
            function_id=row["function_id"],
            event_name=row["event_name"],
            payload=json.loads(row["payload"]),
            status=JobStatus(row["status"]),
            attempts=row["attempts"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_error=row["last_error"],
        )

    @staticmethod
    def _row_to_step(row: sqlite3.Row) -> StoredStep:
        return StoredStep(
            job_id=row["job_id"],
            step_id=row["step_id"],
            output=json.loads(row["output_json"]),
            completed_at=row["completed_at"],
        )

    # ------------------------------------------------------------------
    # Cleanup (para tests)
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._conn.close()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _runnable_clause(lease_seconds: float | None) -> tuple[str, tuple]:
    """WHERE para trabajos reclamables: QUEUED, o RUNNING con el lease vencido."""
    if lease_seconds is None:
        return "status = ?", (JobStatus.QUEUED.value,)

    # Los timestamps son ISO en UTC: se comparan bien como texto
    expired = (datetime.now(timezone.utc) - timedelta(seconds=lease_seconds)).isoformat()
    return (
        "status = ? OR (status = ? AND updated_at <= ?)",
        (JobStatus.QUEUED.value, JobStatus.RUNNING.value, expired),
    )
