"""Configuration package.

Note: Do not import and construct settings at package import time. Import
from ``watchstore.config.settings`` directly where needed so tests can
reload it against a patched environment.
"""

__all__: list[str] = []
