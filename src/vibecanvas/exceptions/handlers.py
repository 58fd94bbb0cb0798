"""
Centralized error handling utilities.

Each layer translates errors to be more useful at the next level up:

```
┌─────────────────────────────────────────┐
│  USER LAYER (CLI)                       │
│  - Formats error.user_message           │
│  - Shows error.recovery_hint            │
└─────────────────────────────────────────┘
                  ↑ VibeCanvasError
┌─────────────────────────────────────────┐
│  CORE (controller, scheduler, machine)  │
│  - Converts low-level exceptions        │
│  - Isolates per-device failures         │
└─────────────────────────────────────────┘
                  ↑ OSError, aiohttp errors, ...
┌─────────────────────────────────────────┐
│  TRANSPORT (websocket, devices)         │
└─────────────────────────────────────────┘
```

| Scenario | Use This |
|----------|----------|
| Server unreachable | `raise wrap_transport_error(e, address) from e` |
| Bad JSON document | `raise wrap_pydantic_error(e, path) from e` |
| Fan a command out to every device | `collector = collect_errors("stop all"); with collector.try_operation(...)` |
| Show error in the CLI | `message, hint = format_error_for_display(e)` |
"""

import asyncio
import logging
from typing import Optional

from .base import VibeCanvasError
from .config import ConfigFileInvalidError, ConfigValidationError
from .connection import ServerConnectionError

logger = logging.getLogger(__name__)


def wrap_pydantic_error(error: Exception, file_path: str) -> VibeCanvasError:
    """
    Convert Pydantic validation errors to VibeCanvas exceptions.

    Args:
        error: The Pydantic ValidationError
        file_path: Path to the document that failed validation

    Returns:
        A ConfigurationError with appropriate type and message
    """
    from pydantic import ValidationError

    error_msg = str(error)

    if "Invalid JSON" in error_msg or "json_invalid" in error_msg:
        # Format: "Invalid JSON: <actual error> [type=json_invalid, ..."
        if "Invalid JSON:" in error_msg:
            parse_error = error_msg.split("Invalid JSON:")[1].split("[type=")[0].strip()
        else:
            parse_error = error_msg
        return ConfigFileInvalidError(file_path, parse_error)

    if isinstance(error, ValidationError):
        errors = error.errors()
        if len(errors) == 1:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", ("unknown",)))
            return ConfigValidationError(
                field=field,
                value=first_error.get("input"),
                error_msg=first_error.get("msg", "validation failed"),
                file_path=file_path,
            )
        if errors:
            error_lines = []
            for err in errors:
                field = ".".join(str(loc) for loc in err.get("loc", ("unknown",)))
                error_lines.append(f"  - {field}: {err.get('msg', 'validation failed')}")

            combined_msg = f"{len(errors)} validation errors:\n" + "\n".join(error_lines)
            return ConfigValidationError(
                field="multiple fields", value=None, error_msg=combined_msg, file_path=file_path
            )

    return ConfigValidationError(field="unknown", value=None, error_msg=error_msg, file_path=file_path)


def wrap_transport_error(error: Exception, address: str) -> ServerConnectionError:
    """
    Convert low-level connection failures to a ServerConnectionError.

    Args:
        error: The original exception from the socket or websocket layer
        address: The server address that was tried

    Returns:
        A ServerConnectionError with a matching recovery hint
    """
    if isinstance(error, ServerConnectionError):
        return error
    if isinstance(error, VibeCanvasError):
        return ServerConnectionError(address, reason=error.technical_message)

    error_msg = str(error) or type(error).__name__
    lowered = error_msg.lower()

    if isinstance(error, ConnectionRefusedError) or "refused" in lowered or "cannot connect" in lowered:
        return ServerConnectionError(
            address,
            reason=error_msg,
            recovery_hint=(
                "Nothing is listening at that address. Start Intiface Central and enable its "
                "server, or pass --address."
            ),
        )

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)) or "timeout" in lowered:
        return ServerConnectionError(
            address,
            reason=error_msg,
            recovery_hint="The server did not answer in time. Check the address and try again.",
        )

    if "handshake" in lowered or "invalid url" in lowered:
        return ServerConnectionError(
            address,
            reason=error_msg,
            recovery_hint="The address must point at a Buttplug websocket server, e.g. ws://127.0.0.1:12345",
        )

    return ServerConnectionError(address, reason=error_msg)


def format_error_for_display(error: Exception) -> tuple[str, Optional[str]]:
    """
    Format an exception for user display.

    Returns:
        Tuple of (user_message, recovery_hint or None)
    """
    if isinstance(error, VibeCanvasError):
        return error.user_message, error.recovery_hint

    error_type = type(error).__name__
    return f"{error_type}: {error}", None


def collect_errors(operation: str) -> "ErrorCollector":
    """
    Create an error collector for fan-out operations.

    Example:
        ```python
        collector = collect_errors("stop all devices")

        for device in devices:
            with collector.try_operation(f"stop {device.name}"):
                device.stop()

        if collector.has_errors:
            logger.warning(collector.get_summary())
        ```
    """
    return ErrorCollector(operation)


class ErrorCollector:
    """
    Collects multiple errors during fan-out operations.

    Allows the remaining operations to run even if some fail, then
    report all failures at once.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.errors: list[tuple[str, Exception]] = []
        self.success_count = 0

    @property
    def has_errors(self) -> bool:
        """Check if any errors were collected."""
        return len(self.errors) > 0

    @property
    def error_count(self) -> int:
        """Get the number of errors collected."""
        return len(self.errors)

    def try_operation(self, sub_operation: str) -> "ErrorCollector._OperationContext":
        """Context manager for a single operation within the batch."""
        return self._OperationContext(self, sub_operation)

    def get_summary(self) -> str:
        """Get a multi-line summary of collected errors."""
        if not self.has_errors:
            return f"{self.operation}: all {self.success_count} operation(s) succeeded"

        total = self.error_count + self.success_count
        summary = f"{self.operation}: failed {self.error_count} of {total} operation(s):\n"
        for sub_op, error in self.errors:
            if isinstance(error, VibeCanvasError):
                summary += f"  - {sub_op}: {error.technical_message}\n"
            else:
                summary += f"  - {sub_op}: {error}\n"

        return summary.rstrip()

    class _OperationContext:
        """Internal context manager for individual operations."""

        def __init__(self, collector: "ErrorCollector", sub_operation: str):
            self.collector = collector
            self.sub_operation = sub_operation

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_type is None:
                self.collector.success_count += 1
                return False

            if not issubclass(exc_type, Exception):
                # KeyboardInterrupt and friends are not collected
                return False

            self.collector.errors.append((self.sub_operation, exc_val))
            return True
