"""Contrato del control-plane de despliegues."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import DeploymentRequest, DeploymentResult


@runtime_checkable
class DeploymentGateway(Protocol):
    """Dispara despliegues contra el control-plane.

    Reglas de diseño:
    - `trigger` es asíncrono porque hace I/O (HTTP).
    - Fallos de transporte o de status se elevan como `NetworkError`.
    - Un sobre de respuesta sin resultado devuelve `None`, no un error.
    """

    async def trigger(self, request: DeploymentRequest) -> DeploymentResult | None:
        ...
