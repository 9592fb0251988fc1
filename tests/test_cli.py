# tests/test_cli.py
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch
from click.testing import CliRunner

from booklingua.cli import main
from booklingua.errors import OrderNotReadyError, StepFailedError, UnknownLanguageError
from booklingua.intake import SubmittedOrder
from booklingua.orchestrator import JobResult
from booklingua.router.router import AllModelsExhaustedError
from booklingua.storage.models import JobStatus
from booklingua.storage.repository import Repository
from booklingua.workflow.engine import JobOutcome
from booklingua.workflow.events import TranslateRequested
from booklingua.workflow.trigger import WorkerReport


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def book_file(tmp_path) -> Path:
    """Manuscrito .txt válido para los tests."""
    f = tmp_path / "libro.txt"
    f.write_text("Hello world.", encoding="utf-8")
    return f


@pytest.fixture
def repo():
    r = Repository(db_path=":memory:")
    yield r
    r.close()


@pytest.fixture
def pipeline(repo):
    """Pipeline con el store real y todo lo demás mockeado."""
    p = MagicMock()
    p.repo = repo
    with patch("booklingua.cli.build_pipeline", return_value=p):
        yield p


def make_outcome(order_id: int = 1, skipped: int = 0) -> JobOutcome:
    return JobOutcome(
        job_id         = f"translate-book:{order_id}",
        status         = JobStatus.COMPLETED,
        result         = JobResult(success=True, order_id=order_id, languages=["es"]),
        executed_steps = ["get-order"] * (12 - skipped),
        skipped_steps  = ["get-order"] * skipped,
    )


def make_order(repo) -> int:
    return repo.create_order("ana@example.com", "Ana", "Mi libro", ["es", "fr"])


# ------------------------------------------------------------------
# booklingua submit
# ------------------------------------------------------------------

class TestSubmit:

    def run_submit(self, runner, book, *extra):
        return runner.invoke(main, [
            "submit",
            "--email",  "ana@example.com",
            "--author", "Ana",
            "--title",  "Mi libro",
            "--lang",   "ES",
            "--lang",   "fr",
            "--file",   str(book),
            *extra,
        ])

    def test_crea_el_pedido(self, runner, book_file, pipeline):
        pipeline.intake.submit.return_value = SubmittedOrder(1, ["translate-book:1"])

        result = self.run_submit(runner, book_file)

        assert result.exit_code == 0
        assert "Pedido 1 creado" in result.output
        assert "translate-book:1" in result.output
        kwargs = pipeline.intake.submit.call_args.kwargs
        assert kwargs["languages"] == ["es", "fr"]
        assert kwargs["content"] == "Hello world."
        assert kwargs["file_format"] == "txt"
        pipeline.engine.execute.assert_not_called()

    def test_run_ejecuta_al_momento(self, runner, book_file, pipeline):
        pipeline.intake.submit.return_value = SubmittedOrder(1, ["translate-book:1"])
        pipeline.engine.execute.return_value = make_outcome()

        result = self.run_submit(runner, book_file, "--run")

        assert result.exit_code == 0
        pipeline.engine.execute.assert_called_once_with("translate-book:1", force=False)
        assert "Trabajo completado" in result.output

    def test_archivo_inexistente(self, runner, tmp_path, pipeline):
        result = self.run_submit(runner, tmp_path / "no_existe.txt")
        assert result.exit_code == 1
        assert "Archivo no encontrado" in result.output

    def test_formato_no_soportado(self, runner, tmp_path, pipeline):
        epub = tmp_path / "libro.epub"
        epub.write_text("x")
        result = self.run_submit(runner, epub)
        assert result.exit_code == 1
        assert "Formato no soportado" in result.output

    def test_manuscrito_vacio(self, runner, tmp_path, pipeline):
        empty = tmp_path / "vacio.txt"
        empty.write_text("  \n")
        result = self.run_submit(runner, empty)
        assert result.exit_code == 1
        pipeline.intake.submit.assert_not_called()

    def test_idioma_desconocido(self, runner, book_file, pipeline):
        pipeline.intake.submit.side_effect = UnknownLanguageError("Idioma no soportado: 'xx'")
        result = self.run_submit(runner, book_file)
        assert result.exit_code == 1
        assert "Idioma no soportado" in result.output


# ------------------------------------------------------------------
# booklingua trigger / run
# ------------------------------------------------------------------

class TestTrigger:

    def test_encola(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.trigger.send.return_value = [f"translate-book:{order_id}"]

        result = runner.invoke(main, ["trigger", "--order", str(order_id)])

        assert result.exit_code == 0
        pipeline.trigger.send.assert_called_once_with(TranslateRequested(order_id=order_id))
        assert "Trabajo encolado" in result.output

    def test_duplicado(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.trigger.send.return_value = []

        result = runner.invoke(main, ["trigger", "--order", str(order_id)])

        assert result.exit_code == 0
        assert "Sin cambios" in result.output

    def test_pedido_inexistente(self, runner, pipeline):
        result = runner.invoke(main, ["trigger", "--order", "999"])
        assert result.exit_code == 1


class TestRun:

    def test_ejecuta_y_resume(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.engine.execute.return_value = make_outcome(order_id)

        result = runner.invoke(main, ["run", "--order", str(order_id)])

        assert result.exit_code == 0
        pipeline.trigger.send.assert_called_once()
        assert f"Pedido     : {order_id}" in result.output

    def test_force_relanza(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.engine.execute.return_value = make_outcome(order_id, skipped=12)

        result = runner.invoke(main, ["run", "--order", str(order_id), "--force"])

        assert result.exit_code == 0
        pipeline.engine.execute.assert_called_once_with(f"translate-book:{order_id}", force=True)
        assert "reanudación" in result.output

    def test_sin_modelos_sale_con_2(self, runner, repo, pipeline):
        order_id = make_order(repo)
        cause = AllModelsExhaustedError("sin quota")
        pipeline.engine.execute.side_effect = StepFailedError("translate-es", 3, cause)

        result = runner.invoke(main, ["run", "--order", str(order_id)])

        assert result.exit_code == 2
        assert "Sin modelos disponibles" in result.output

    def test_paso_fallido_sale_con_2(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.engine.execute.side_effect = StepFailedError("notify-admin", 3, RuntimeError("x"))

        result = runner.invoke(main, ["run", "--order", str(order_id)])

        assert result.exit_code == 2
        assert "notify-admin" in result.output

    def test_error_inesperado_sale_con_1(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.engine.execute.side_effect = KeyError("raro")

        result = runner.invoke(main, ["run", "--order", str(order_id)])

        assert result.exit_code == 1
        assert "Error inesperado" in result.output

    def test_trabajo_ya_terminado(self, runner, repo, pipeline):
        order_id = make_order(repo)
        pipeline.engine.execute.return_value = None

        result = runner.invoke(main, ["run", "--order", str(order_id)])

        assert result.exit_code == 0
        assert "--force" in result.output


# ------------------------------------------------------------------
# booklingua worker / status / render
# ------------------------------------------------------------------

class TestWorker:

    def test_once_sin_fallos(self, runner, pipeline):
        pipeline.worker.run_once.return_value = WorkerReport(completed=["translate-book:1"])
        result = runner.invoke(main, ["worker", "--once"])
        assert result.exit_code == 0
        assert "Completados: 1" in result.output

    def test_once_con_fallos_sale_con_2(self, runner, pipeline):
        pipeline.worker.run_once.return_value = WorkerReport(failed=["translate-book:1"])
        result = runner.invoke(main, ["worker", "--once"])
        assert result.exit_code == 2


class TestStatus:

    def test_pedido_sin_trabajo(self, runner, repo, pipeline):
        order_id = make_order(repo)

        result = runner.invoke(main, ["status", "--order", str(order_id)])

        assert result.exit_code == 0
        assert "pending" in result.output
        assert "sin encolar" in result.output

    def test_pedido_con_pasos(self, runner, repo, pipeline):
        order_id = make_order(repo)
        job_id   = f"translate-book:{order_id}"
        repo.create_job_run(job_id, "translate-book", "book/translate.requested", {"order_id": order_id})
        repo.save_step(job_id, "get-order", {})
        repo.finish_job_run(job_id, JobStatus.FAILED, "StepFailedError: boom")

        result = runner.invoke(main, ["status", "--order", str(order_id)])

        assert result.exit_code == 0
        assert "✓ get-order" in result.output
        assert "boom" in result.output

    def test_pedido_inexistente(self, runner, pipeline):
        result = runner.invoke(main, ["status", "--order", "999"])
        assert result.exit_code == 1


class TestRender:

    def test_escribe_el_entregable(self, runner, pipeline, tmp_path):
        pipeline.renderer.build.return_value = tmp_path / "Mi libro_Spanish.txt"

        result = runner.invoke(main, ["render", "--order", "1", "--lang", "ES", "--mode", "clean"])

        assert result.exit_code == 0
        assert "Mi libro_Spanish.txt" in result.output
        kwargs = pipeline.renderer.build.call_args.kwargs
        assert kwargs["language"] == "es"
        assert kwargs["mode"].value == "clean"

    def test_pedido_no_completado(self, runner, pipeline):
        pipeline.renderer.build.side_effect = OrderNotReadyError("todavía en processing")
        result = runner.invoke(main, ["render", "--order", "1", "--lang", "es"])
        assert result.exit_code == 1
        assert "processing" in result.output


class TestConfig:

    def test_config_inexistente(self, runner):
        with patch("booklingua.cli.build_pipeline", side_effect=FileNotFoundError("Config no encontrada")):
            result = runner.invoke(main, ["worker", "--once"])
        assert result.exit_code == 1
        assert "Config no encontrada" in result.output

    def test_opciones_globales_llegan_al_factory(self, runner, tmp_path):
        with patch("booklingua.cli.build_pipeline") as build:
            build.return_value.worker.run_once.return_value = WorkerReport()
            runner.invoke(main, ["--config", "c.yaml", "--db", str(tmp_path / "x.db"), "worker", "--once"])
        build.assert_called_once_with(config_path="c.yaml", db_path=str(tmp_path / "x.db"))
