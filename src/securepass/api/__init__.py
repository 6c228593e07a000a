# API Module - FastAPI backend
#
# REST endpoints for the vault lifecycle, credentials, categories,
# export and the password generator.

from .main import app, start_api_server
from .services import SessionRegistry, VaultServices, configure_services, get_services

__all__ = [
    "app",
    "start_api_server",
    "SessionRegistry",
    "VaultServices",
    "configure_services",
    "get_services",
]
