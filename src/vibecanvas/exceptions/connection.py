"""Connection and device exceptions.

- ServerConnectionError: The device server could not be reached
- NotConnectedError: An operation needs a live session and there is none
- DeviceIndexError: No device occupies the requested slot
- DeviceDispatchError: A single device rejected a command
- TransportError: The server answered a request with an error message
"""

from typing import Optional

from .base import VibeCanvasError


class ServerConnectionError(VibeCanvasError):
    """Connecting to the device server failed."""

    def __init__(self, address: str, reason: Optional[str] = None, recovery_hint: Optional[str] = None):
        """
        Initialize server connection error.

        Args:
            address: The server address that was tried
            reason: Low-level failure reason, kept for the logs
            recovery_hint: Override for the default hint
        """
        user_msg = f"Could not connect to device server at {address}."
        tech_msg = user_msg
        if reason:
            tech_msg += f"\nOriginal error: {reason}"

        super().__init__(
            user_message=user_msg,
            technical_message=tech_msg,
            recoverable=True,
            recovery_hint=recovery_hint
            or "Make sure Intiface Central (or another Buttplug server) is running and listening.",
        )
        self.address = address
        self.reason = reason


class NotConnectedError(VibeCanvasError):
    """Operation attempted without a connected session."""

    def __init__(self, operation: str):
        super().__init__(
            user_message=f"Cannot {operation}: not connected to a device server.",
            recoverable=True,
            recovery_hint="Connect first, then try again.",
        )
        self.operation = operation


class DeviceIndexError(VibeCanvasError):
    """No connected device at the requested index."""

    def __init__(self, device_index: int, device_count: int):
        super().__init__(
            user_message=f"No device at index {device_index} ({device_count} connected).",
            recoverable=True,
            recovery_hint="Run 'vibecanvas devices' to see connected devices.",
        )
        self.device_index = device_index
        self.device_count = device_count


class DeviceDispatchError(VibeCanvasError):
    """A single device rejected a command."""

    def __init__(self, device_index: int, device_name: str, original_error: Exception | str):
        user_msg = f"Device '{device_name}' rejected a command."
        super().__init__(
            user_message=user_msg,
            technical_message=f"Dispatch to device {device_index} ({device_name}) failed: {original_error}",
            recoverable=True,
        )
        self.device_index = device_index
        self.device_name = device_name
        self.original_error = original_error


class TransportError(VibeCanvasError):
    """The device server replied with an error."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(
            user_message=f"Device server error: {message}",
            technical_message=f"Device server error (code={code}): {message}",
            recoverable=True,
        )
        self.code = code
