"""
Custom exception hierarchy for VibeCanvas.

## Exception Hierarchy

```
VibeCanvasError (base)
├── ServerConnectionError
├── NotConnectedError
├── DeviceIndexError
├── DeviceDispatchError
├── TransportError
├── PlaybackError
│   ├── NoDevicesError        (PlaybackError.NoDevices)
│   └── InsufficientPointsError  (PlaybackError.InsufficientPoints)
└── ConfigurationError
    ├── ConfigFileInvalidError
    └── ConfigValidationError
```

Precondition failures (connect, scan, play) are raised synchronously so the
caller can render `user_message` and `recovery_hint`. Per-tick dispatch
failures are wrapped in `DeviceDispatchError` and only logged.

See `vibecanvas.exceptions.handlers` for conversion helpers.
"""

from .base import VibeCanvasError
from .config import ConfigFileInvalidError, ConfigurationError, ConfigValidationError
from .connection import (
    DeviceDispatchError,
    DeviceIndexError,
    NotConnectedError,
    ServerConnectionError,
    TransportError,
)
from .handlers import (
    ErrorCollector,
    collect_errors,
    format_error_for_display,
    wrap_pydantic_error,
    wrap_transport_error,
)
from .playback import InsufficientPointsError, NoDevicesError, PlaybackError

__all__ = [
    # Base
    "VibeCanvasError",
    # Config
    "ConfigFileInvalidError",
    "ConfigValidationError",
    "ConfigurationError",
    # Connection
    "DeviceDispatchError",
    "DeviceIndexError",
    "NotConnectedError",
    "ServerConnectionError",
    "TransportError",
    # Playback
    "InsufficientPointsError",
    "NoDevicesError",
    "PlaybackError",
    # Handlers
    "ErrorCollector",
    "collect_errors",
    "format_error_for_display",
    "wrap_pydantic_error",
    "wrap_transport_error",
]
