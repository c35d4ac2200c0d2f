"""Validación de la URL del repositorio a desplegar.

Función pura: sin red ni efectos secundarios, para poder re-evaluarla en
cada pulsación de tecla (UI) o antes de construir un `DeploymentRequest`.
"""

from __future__ import annotations

import re
from typing import NamedTuple

INVALID_REPO_URL_MESSAGE = "Enter valid Github Repository URL"

_REPO_URL_RE = re.compile(r"(?:https?://)?(?:www\.)?github\.com/([^/]+)/([^/]+)/?")


class UrlValidation(NamedTuple):
    is_valid: bool
    message: str | None


def validate_repo_url(url: str | None) -> UrlValidation:
    """Valida `url` contra `[scheme://][www.]github.com/<owner>/<repo>[/]`.

    - Vacía o solo espacios: `(False, None)`; no se muestra error.
    - Coincide: `(True, None)`.
    - No coincide: `(False, INVALID_REPO_URL_MESSAGE)`.
    """

    if not url or not url.strip():
        return UrlValidation(False, None)
    if _REPO_URL_RE.fullmatch(url):
        return UrlValidation(True, None)
    return UrlValidation(False, INVALID_REPO_URL_MESSAGE)


def repo_full_name(url: str) -> str | None:
    """Devuelve `owner/repo` si la URL es válida; `None` en otro caso."""

    match = _REPO_URL_RE.fullmatch(url or "")
    if match is None:
        return None
    return f"{match.group(1)}/{match.group(2)}"
