"""Servicios del Core: canal en tiempo real, agregador de logs y sesión."""
