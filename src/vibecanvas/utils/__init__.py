"""Generic utility modules for vibecanvas.

- observer: Thread-safe observer list manager
- persistence: Pydantic JSON load/save helpers
- paths: User file locations
"""

from .observer import ObserverManager
from .paths import app_dir, default_config_path, default_log_path
from .persistence import PydanticPersistence

__all__ = [
    "ObserverManager",
    "PydanticPersistence",
    "app_dir",
    "default_config_path",
    "default_log_path",
]
