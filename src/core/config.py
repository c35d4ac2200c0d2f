"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Los endpoints del control-plane y del streaming dejan de ser constantes
  embebidas: se leen del entorno o del `.env` del usuario.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.models import BackoffPolicy


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "shipwatch"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "shipwatch"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "shipwatch"
    return Path.home() / ".config" / "shipwatch"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str | None], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# shipwatch user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPWATCH_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    api_base_url: str = Field(
        default="http://localhost:9000",
        min_length=8,
        description="Base URL del control-plane de despliegues.",
    )
    deploy_path: str = Field(
        default="/project",
        min_length=1,
        description="Ruta del endpoint que dispara un despliegue (POST).",
    )
    socket_url: str = Field(
        default="http://localhost:9002",
        min_length=8,
        description="URL del servicio de streaming de logs (Socket.IO).",
    )

    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    user_agent: str = Field(
        default="shipwatch/0.1",
        min_length=1,
        description="User-Agent para las peticiones al control-plane.",
    )

    reconnect_max_attempts: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Reintentos automáticos de conexión al streaming.",
    )
    reconnect_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Espera entre reintentos de conexión (segundos).",
    )
    reconnect_jitter_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Jitter aleatorio máximo añadido a cada espera (segundos).",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Cuánto espera la CLI a la primera conexión antes de abortar.",
    )

    log_level: str = Field(
        default="WARNING",
        pattern=r"(?i)^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Nivel del logging de diagnóstico (DEBUG, INFO, WARNING...).",
    )

    @property
    def deploy_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/{self.deploy_path.lstrip('/')}"

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.reconnect_max_attempts,
            base_delay=self.reconnect_delay_seconds,
            jitter=self.reconnect_jitter_seconds,
        )
