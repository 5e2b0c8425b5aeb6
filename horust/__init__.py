"""Supervisor building blocks: service definitions, health checks, an event bus and a Unix-socket command protocol."""

__version__ = "0.2.0"