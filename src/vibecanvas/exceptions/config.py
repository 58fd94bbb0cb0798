"""Configuration-related exceptions.

- ConfigurationError: Base class for configuration errors
- ConfigFileInvalidError: A JSON document has invalid syntax
- ConfigValidationError: A JSON document has invalid values
"""

from typing import Any, Optional

from .base import VibeCanvasError


class ConfigurationError(VibeCanvasError):
    """Configuration is invalid or cannot be loaded."""
    pass


class ConfigFileInvalidError(ConfigurationError):
    """File has invalid JSON syntax."""

    def __init__(self, file_path: str, parse_error: str):
        user_msg = "File has invalid syntax"
        recovery = "Check for common JSON errors:\n"
        recovery += "  - Trailing commas (remove commas after last item)\n"
        recovery += "  - Missing quotes around strings\n"
        recovery += "  - Unclosed braces or brackets\n"
        recovery += f"  - Edit: {file_path}"

        if "trailing comma" in parse_error.lower():
            user_msg = "File has a trailing comma"
            recovery = (
                f"Remove the trailing comma from {file_path}\n"
                "JSON doesn't allow commas after the last item in an object or array"
            )
        elif parse_error == "File is empty":
            user_msg = "File is empty"
            recovery = (
                f"Write a JSON document to {file_path}\n"
                "If it is the config file, deleting it restores the defaults"
            )

        super().__init__(
            user_message=user_msg,
            technical_message=f"JSON parse error in {file_path}: {parse_error}",
            recoverable=True,
            recovery_hint=recovery,
        )
        self.file_path = file_path
        self.parse_error = parse_error


class ConfigValidationError(ConfigurationError):
    """Document values fail validation."""

    def __init__(self, field: str, value: Any, error_msg: str, file_path: Optional[str] = None):
        user_msg = f"Invalid value for '{field}': {error_msg}"

        recovery = f"Update the '{field}' value"
        if file_path:
            recovery += f"\nFile: {file_path}"

        if "address" in field.lower():
            recovery += "\nThe server address must be a websocket URL, e.g. ws://127.0.0.1:12345"
        elif "intensity" in field.lower():
            recovery += "\nIntensity values range from 0 to 100"

        super().__init__(
            user_message=user_msg,
            technical_message=f"Validation failed for {field}={value!r}: {error_msg}",
            recoverable=True,
            recovery_hint=recovery,
        )
        self.field = field
        self.value = value
        self.file_path = file_path
