# booklingua/config.py
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from booklingua.errors import ConfigError
from booklingua.router.models import ModelConfig

_DEFAULT_CONFIG_PATH = Path.home() / ".booklingua" / "config.yaml"

# Modelos por proveedor y pasada cuando el YAML no los fija
_PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "claude": {
        "translate_model": "claude-sonnet-4-20250514",
        "editorial_model": "claude-opus-4-20250514",
    },
    "gemini": {
        "translate_model": "gemini-2.0-flash",
        "editorial_model": "gemini-2.5-pro",
    },
}


@dataclass
class EmailConfig:
    from_address: str = "BookLingua <orders@booklingua.com>"
    admin_email:  Optional[str] = None
    api_key:      Optional[str] = None


@dataclass
class WorkflowConfig:
    """
    Presupuesto de reintentos por paso y backoff exponencial entre intentos.
    lease_seconds: un trabajo RUNNING sin actividad durante ese tiempo se
    da por huérfano y otro worker lo reclama.
    """
    retries:                int   = 3
    retry_wait_seconds:     float = 1.0
    retry_max_wait_seconds: float = 30.0
    lease_seconds:          float = 1800.0


@dataclass
class AppConfig:
    models:                 list[ModelConfig]
    email:                  EmailConfig    = field(default_factory=EmailConfig)
    workflow:               WorkflowConfig = field(default_factory=WorkflowConfig)
    app_url:                str            = "http://localhost:3000"
    editorial_source_chars: int            = 30_000
    marker_grammar:         str            = "original"
    languages:              dict           = field(default_factory=dict)
    db_path:                Optional[str]  = None
    output_dir:             Optional[str]  = None


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Carga la configuración completa desde YAML.
    Resuelve variables de entorno en los valores ${VAR}.
    Los modelos quedan ordenados por prioridad ascendente.
    """
    path = Path(config_path or os.environ.get("BOOKLINGUA_CONFIG_PATH") or _DEFAULT_CONFIG_PATH)

    if not path.exists():
        raise FileNotFoundError(
            f"Config no encontrada en {path}. "
            f"Copia config.example.yaml a ~/.booklingua/config.yaml"
        )

    with path.open(encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: el YAML debe ser un mapa en la raíz")

    return parse_config(raw)


def parse_config(raw: dict) -> AppConfig:
    """Construye el AppConfig a partir del dict ya leído del YAML."""
    email_raw    = raw.get("email") or {}
    workflow_raw = raw.get("workflow") or {}

    workflow = WorkflowConfig(
        retries                = int(workflow_raw.get("retries", 3)),
        retry_wait_seconds     = float(workflow_raw.get("retry_wait_seconds", 1.0)),
        retry_max_wait_seconds = float(workflow_raw.get("retry_max_wait_seconds", 30.0)),
        lease_seconds          = float(workflow_raw.get("lease_seconds", 1800.0)),
    )
    if workflow.retries < 1:
        raise ConfigError("workflow.retries debe ser al menos 1")
    if workflow.lease_seconds <= 0:
        raise ConfigError("workflow.lease_seconds debe ser positivo")

    return AppConfig(
        models   = load_model_configs(raw.get("models") or []),
        email    = EmailConfig(
            from_address = email_raw.get("from_address", EmailConfig.from_address),
            admin_email  = _resolve_env(email_raw.get("admin_email")),
            api_key      = _resolve_env(email_raw.get("api_key")),
        ),
        workflow               = workflow,
        app_url                = str(_resolve_env(raw.get("app_url")) or AppConfig.app_url).rstrip("/"),
        editorial_source_chars = int(raw.get("editorial_source_chars", 30_000)),
        marker_grammar         = raw.get("marker_grammar", "original"),
        languages              = raw.get("languages") or {},
        db_path                = _resolve_env(raw.get("db_path")),
        output_dir             = _resolve_env(raw.get("output_dir")),
    )


def load_model_configs(entries: list[dict]) -> list[ModelConfig]:
    configs = []
    for entry in entries:
        name     = entry["name"]
        defaults = _PROVIDER_DEFAULTS.get(name, {})
        translate_model = entry.get("translate_model") or defaults.get("translate_model")
        editorial_model = entry.get("editorial_model") or defaults.get("editorial_model")
        if not translate_model or not editorial_model:
            raise ConfigError(
                f"El modelo '{name}' necesita translate_model y editorial_model"
            )

        configs.append(ModelConfig(
            name              = name,
            priority          = entry.get("priority", 99),
            daily_token_limit = entry.get("daily_token_limit", 2_000_000),
            translate_model   = translate_model,
            editorial_model   = editorial_model,
            api_key           = _resolve_env(entry.get("api_key")),
            timeout_seconds   = entry.get("timeout_seconds", 600),
            temperature       = entry.get("temperature", 0.3),
            max_tokens        = entry.get("max_tokens", 64_000),
        ))

    return sorted(configs, key=lambda c: c.priority)


def _resolve_env(value: Optional[str]) -> Optional[str]:
    """Expande ${VAR_NAME} desde el entorno."""
    if not isinstance(value, str) or not value.startswith("${"):
        return value
    var_name = value.strip("${}").strip()
    return os.environ.get(var_name)
