"""HTTP surface for cached collection reads and link health."""

from .settings import ServiceSettings
from .server import create_app, build_services, Services

__all__ = ['ServiceSettings', 'create_app', 'build_services', 'Services']
