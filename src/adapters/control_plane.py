"""Cliente del control-plane: dispara despliegues.

Contrato observado:
- `POST {api_base_url}{deploy_path}` con `{"gitURL": ..., "slug": ...}`.
- Respuesta `{"data": {"projectSlug": ..., "url": ...}}`.

Nota: el sobre `data` y sus nombres de campo son un acoplamiento frágil con
el backend; cualquier cambio de forma se trata como "sin resultado".
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.errors import NetworkError
from core.domain.models import DeploymentEnvelope, DeploymentRequest, DeploymentResult
from core.interfaces.deployment import DeploymentGateway

logger = logging.getLogger(__name__)


def parse_deployment_envelope(body: Any) -> DeploymentResult | None:
    """Extrae el `DeploymentResult` del sobre, o `None` si falta o está mal formado."""

    if not isinstance(body, dict):
        return None
    try:
        envelope = DeploymentEnvelope.model_validate(body)
    except ValidationError as exc:
        logger.debug("Malformed deployment envelope: %s", exc)
        return None
    return envelope.data


class ControlPlaneClient(DeploymentGateway):
    """Implementación httpx de `DeploymentGateway`."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._transport = transport

    async def trigger(self, request: DeploymentRequest) -> DeploymentResult | None:
        url = self._settings.deploy_url
        logger.info("Triggering deployment of %s", request.target_url)

        try:
            async with build_async_client(self._settings, transport=self._transport) as client:
                response = await client.post(url, json=request.to_payload())
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"Control-plane answered HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Control-plane request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            # Un 2xx sin JSON equivale a un sobre ausente: sin resultado.
            logger.debug("Control-plane returned a non-JSON body: %s", exc)
            return None

        return parse_deployment_envelope(body)
