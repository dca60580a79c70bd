"""Authoritative endpoint: admission, fan-out and the HTTP application."""

from junctionsync.server.app import create_app, run_server
from junctionsync.server.broadcast import ClientKind, ClientRegistration, ClientRegistry
from junctionsync.server.endpoint import AdmissionResult, AuthoritativeEndpoint

__all__ = [
    "AdmissionResult",
    "AuthoritativeEndpoint",
    "ClientKind",
    "ClientRegistration",
    "ClientRegistry",
    "create_app",
    "run_server",
]
