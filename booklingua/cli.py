# booklingua/cli.py
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from booklingua.errors import (
    ConfigError,
    OrderNotFoundError,
    OrderNotReadyError,
    StepFailedError,
    TranslationNotFoundError,
    UnknownLanguageError,
)
from booklingua.factory import Pipeline, build_pipeline
from booklingua.orchestrator import TranslationOrchestrator
from booklingua.renderer import RenderMode
from booklingua.router.router import AllModelsExhaustedError
from booklingua.storage.models import Tier
from booklingua.workflow.events import TranslateRequested


# Carga .env una sola vez, antes que cualquier otra cosa
load_dotenv()

# El texto ya viene extraído: el parseo de EPUB/PDF/DOCX ocurre antes
_SUPPORTED_FORMATS = {".txt", ".md"}


# ------------------------------------------------------------------
# Grupo raíz
# ------------------------------------------------------------------

@click.group()
@click.version_option(package_name="booklingua")
@click.option("--config", "config_path", default=None, help="Ruta al config.yaml")
@click.option("--db", "db_path", default=None, help="Ruta a la base SQLite")
@click.option("--verbose", "-v", is_flag=True, help="Logging detallado")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, db_path: str | None, verbose: bool):
    """
    BookLingua — pipeline de traducción en dos pasadas.

    Traduce el manuscrito a cada idioma del pedido, aplica una revisión
    editorial con los cambios marcados y avisa al cliente al terminar.
    """
    logging.basicConfig(
        level  = logging.DEBUG if verbose else logging.WARNING,
        format = "%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["db_path"]     = db_path


# ------------------------------------------------------------------
# booklingua submit
# ------------------------------------------------------------------

@main.command()
@click.option("--email", required=True, help="Email del cliente")
@click.option("--author", "author_name", required=True, help="Nombre del autor")
@click.option("--title", "book_title", required=True, help="Título del libro")
@click.option(
    "--lang", "languages",
    required = True,
    multiple = True,
    metavar  = "LANG",
    help     = "Idioma de destino (repetible, en orden: --lang es --lang fr)",
)
@click.option(
    "--file", "file_path",
    required = True,
    type     = click.Path(exists=False),   # validamos nosotros para mejor mensaje
    help     = "Manuscrito ya extraído a texto (.txt, .md)",
)
@click.option("--genre", default=None, help="Género literario (opcional)")
@click.option("--instructions", default=None, help="Instrucciones especiales del autor")
@click.option(
    "--tier",
    default      = Tier.SMALL.value,
    show_default = True,
    type         = click.Choice([t.value for t in Tier], case_sensitive=False),
)
@click.option("--run", "run_now", is_flag=True, help="Ejecuta el trabajo al momento, sin worker")
@click.pass_context
def submit(
    ctx:          click.Context,
    email:        str,
    author_name:  str,
    book_title:   str,
    languages:    tuple[str, ...],
    file_path:    str,
    genre:        str | None,
    instructions: str | None,
    tier:         str,
    run_now:      bool,
):
    """Crea un pedido pagado y encola su traducción."""
    _validate_file(file_path)
    content = Path(file_path).read_text(encoding="utf-8")
    if not content.strip():
        _abort(f"El manuscrito está vacío: {file_path}")

    pipeline = _build(ctx)
    try:
        submitted = pipeline.intake.submit(
            email                = email,
            author_name          = author_name,
            book_title           = book_title,
            languages            = [code.strip().lower() for code in languages],
            content              = content,
            tier                 = Tier(tier.lower()),
            file_format          = Path(file_path).suffix.lstrip(".").lower(),
            genre                = genre,
            special_instructions = instructions,
        )
    except UnknownLanguageError as e:
        pipeline.close()
        _abort(str(e))

    click.echo(f"[booklingua] ✓ Pedido {submitted.order_id} creado")
    for job_id in submitted.job_ids:
        click.echo(f"[booklingua]   Trabajo encolado: {job_id}")

    try:
        if run_now:
            for job_id in submitted.job_ids:
                _execute(pipeline, job_id)
    finally:
        pipeline.close()


# ------------------------------------------------------------------
# booklingua trigger
# ------------------------------------------------------------------

@main.command()
@click.option("--order", "order_id", required=True, type=int, help="Id del pedido")
@click.pass_context
def trigger(ctx: click.Context, order_id: int):
    """Emite book/translate.requested para un pedido existente."""
    pipeline = _build(ctx)
    try:
        if pipeline.repo.get_order(order_id) is None:
            _abort(f"Pedido no encontrado: {order_id}")

        job_ids = pipeline.trigger.send(TranslateRequested(order_id=order_id))
        if job_ids:
            click.echo(f"[booklingua] ✓ Trabajo encolado: {job_ids[0]}")
        else:
            click.echo(f"[booklingua] El pedido {order_id} ya tenía su trabajo. Sin cambios.")
    finally:
        pipeline.close()


# ------------------------------------------------------------------
# booklingua worker
# ------------------------------------------------------------------

@main.command()
@click.option("--once", is_flag=True, help="Procesa la cola actual y termina")
@click.option(
    "--poll",
    default      = 5.0,
    show_default = True,
    type         = float,
    help         = "Segundos entre consultas a la cola",
)
@click.pass_context
def worker(ctx: click.Context, once: bool, poll: float):
    """Consume los trabajos encolados."""
    pipeline = _build(ctx)
    try:
        if once:
            report = pipeline.worker.run_once()
            click.echo(
                f"[booklingua] Completados: {len(report.completed)} | "
                f"Fallidos: {len(report.failed)} | Omitidos: {len(report.skipped)}"
            )
            if report.failed:
                sys.exit(2)
            return

        click.echo(f"[booklingua] Worker activo (poll cada {poll:.1f}s). Ctrl+C para salir.")
        pipeline.worker.run_forever(poll_seconds=poll)

    except KeyboardInterrupt:
        click.echo(
            "\n[booklingua] Worker detenido. "
            "Los trabajos a medias se reanudan desde su último paso."
        )
        sys.exit(0)
    finally:
        pipeline.close()


# ------------------------------------------------------------------
# booklingua run
# ------------------------------------------------------------------

@main.command()
@click.option("--order", "order_id", required=True, type=int, help="Id del pedido")
@click.option("--force", is_flag=True, help="Relanza aunque el trabajo ya haya terminado")
@click.pass_context
def run(ctx: click.Context, order_id: int, force: bool):
    """Ejecuta el trabajo de un pedido en primer plano."""
    pipeline = _build(ctx)
    try:
        if pipeline.repo.get_order(order_id) is None:
            _abort(f"Pedido no encontrado: {order_id}")

        job_id = _job_id(order_id)
        if pipeline.repo.get_job_run(job_id) is None:
            pipeline.trigger.send(TranslateRequested(order_id=order_id))

        _execute(pipeline, job_id, force=force)
    finally:
        pipeline.close()


# ------------------------------------------------------------------
# booklingua status
# ------------------------------------------------------------------

@main.command()
@click.option("--order", "order_id", required=True, type=int, help="Id del pedido")
@click.pass_context
def status(ctx: click.Context, order_id: int):
    """Muestra el estado del pedido, su trabajo y sus pasos."""
    pipeline = _build(ctx)
    try:
        order = pipeline.repo.get_order(order_id)
        if order is None:
            _abort(f"Pedido no encontrado: {order_id}")

        files = pipeline.repo.get_translated_files(order_id)
        job   = pipeline.repo.get_job_run(_job_id(order_id))

        click.echo("─" * 50)
        click.echo(f"[booklingua]   Pedido     : {order.id} — {order.book_title}")
        click.echo(f"[booklingua]   Cliente    : {order.author_name} ({order.email})")
        click.echo(f"[booklingua]   Estado     : {order.status.value}")
        click.echo(f"[booklingua]   Idiomas    : {', '.join(order.languages)}")
        click.echo(f"[booklingua]   Traducidos : {', '.join(f.language for f in files) or '—'}")
        if order.completed_at:
            click.echo(f"[booklingua]   Completado : {order.completed_at}")

        if job is None:
            click.echo("[booklingua]   Trabajo    : sin encolar")
        else:
            click.echo(f"[booklingua]   Trabajo    : {job.job_id} ({job.status.value}, {job.attempts} intentos)")
            if job.last_error:
                click.echo(click.style(f"[booklingua]   Error      : {job.last_error}", fg="red"))
            for step in pipeline.repo.get_steps(job.job_id):
                click.echo(f"[booklingua]     ✓ {step.step_id}")
        click.echo("─" * 50)
    finally:
        pipeline.close()


# ------------------------------------------------------------------
# booklingua render
# ------------------------------------------------------------------

@main.command()
@click.option("--order", "order_id", required=True, type=int, help="Id del pedido")
@click.option("--lang", "language", required=True, metavar="LANG", help="Idioma a descargar")
@click.option(
    "--mode",
    default      = RenderMode.REVIEW.value,
    show_default = True,
    type         = click.Choice([m.value for m in RenderMode], case_sensitive=False),
    help         = "review: marcadores visibles | clean: texto publicable | html: revisión con <mark>",
)
@click.option("--out", "output_dir", default=None, type=click.Path(file_okay=False), help="Carpeta de salida")
@click.pass_context
def render(ctx: click.Context, order_id: int, language: str, mode: str, output_dir: str | None):
    """Escribe el entregable de un idioma de un pedido completado."""
    pipeline = _build(ctx)
    try:
        path = pipeline.renderer.build(
            order_id   = order_id,
            language   = language.strip().lower(),
            mode       = RenderMode(mode.lower()),
            output_dir = Path(output_dir) if output_dir else None,
        )
    except (OrderNotFoundError, OrderNotReadyError, TranslationNotFoundError) as e:
        _abort(str(e))
    finally:
        pipeline.close()

    click.echo(f"[booklingua] ✓ Output: {path}")


# ------------------------------------------------------------------
# Helpers de ejecución
# ------------------------------------------------------------------

def _build(ctx: click.Context) -> Pipeline:
    try:
        return build_pipeline(
            config_path = ctx.obj.get("config_path"),
            db_path     = ctx.obj.get("db_path"),
        )
    except FileNotFoundError as e:
        _abort(str(e))
    except (ConfigError, ValueError) as e:
        _abort(str(e))


def _job_id(order_id: int) -> str:
    return f"{TranslationOrchestrator.FUNCTION_ID}:{order_id}"


def _execute(pipeline: Pipeline, job_id: str, force: bool = False) -> None:
    """Corre un trabajo y traduce el resultado a salida y exit code."""
    try:
        outcome = pipeline.engine.execute(job_id, force=force)

    except StepFailedError as e:
        if isinstance(e.cause, AllModelsExhaustedError):
            _error(
                f"Sin modelos disponibles. {e.cause}\n"
                f"Relanza con 'booklingua run --order N --force' cuando tengas quota: "
                f"los pasos completados no se repiten."
            )
        else:
            _error(f"El trabajo {job_id} falló. {e}")
        sys.exit(2)

    except KeyboardInterrupt:
        click.echo(
            "\n[booklingua] Proceso interrumpido. "
            "Relanza con --force para reanudarlo desde el último paso."
        )
        sys.exit(0)

    except Exception as e:
        _error(f"Error inesperado: {type(e).__name__}: {e}")
        sys.exit(1)

    if outcome is None:
        click.echo(
            f"[booklingua] El trabajo {job_id} no está en cola "
            f"(ya terminó o lo ejecuta otro worker). Usa --force para relanzarlo."
        )
        return

    _print_summary(outcome)


# ------------------------------------------------------------------
# Helpers de validación y output
# ------------------------------------------------------------------

def _validate_file(path: str) -> None:
    """Verifica existencia y formato del archivo."""
    p = Path(path)

    if not p.exists():
        _abort(f"Archivo no encontrado: {path}")

    if not p.is_file():
        _abort(f"La ruta no es un archivo: {path}")

    if p.suffix.lower() not in _SUPPORTED_FORMATS:
        supported = ", ".join(sorted(_SUPPORTED_FORMATS))
        _abort(
            f"Formato no soportado: '{p.suffix}'\n"
            f"Formatos disponibles: {supported}"
        )


def _print_summary(outcome) -> None:
    result = outcome.result

    click.echo("")
    click.echo("─" * 50)
    click.echo("[booklingua] ✓ Trabajo completado")
    click.echo(f"[booklingua]   Trabajo    : {outcome.job_id}")
    if result is not None:
        click.echo(f"[booklingua]   Pedido     : {result.order_id}")
        click.echo(f"[booklingua]   Idiomas    : {', '.join(result.languages)}")
    click.echo(f"[booklingua]   Ejecutados : {len(outcome.executed_steps)} pasos")
    if outcome.skipped_steps:
        click.echo(f"[booklingua]   Reutilizados: {len(outcome.skipped_steps)} pasos (reanudación)")
    click.echo("─" * 50)


def _abort(message: str) -> None:
    """Error de validación — culpa del usuario."""
    click.echo(click.style(f"[booklingua] Error: {message}", fg="red"), err=True)
    sys.exit(1)


def _error(message: str) -> None:
    """Error de sistema — no es culpa del usuario."""
    click.echo(click.style(f"[booklingua] {message}", fg="red"), err=True)
