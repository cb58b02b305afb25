"""ASGI middleware: request metrics and body size limit."""
