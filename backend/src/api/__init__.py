"""
API package for the scheduling HTTP endpoints.

Each module exposes a ``router`` that ``main.py`` mounts under ``/api``.
"""
