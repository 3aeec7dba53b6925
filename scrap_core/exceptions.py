"""
Exceptions raised by the ScrapScript translators.
"""

from typing import Optional, Any, Dict


class ScrapError(Exception):
    """Base exception for all translator errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnsupportedConstructError(ScrapError):
    """Raised when source code uses syntax outside the block-representable subset."""

    def __init__(self, message: str, node_kind: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.node_kind = node_kind


class ScriptSyntaxError(ScrapError):
    """Raised when ScrapScript source cannot be parsed at all."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message, {'line': line, 'column': column})
        self.line = line
        self.column = column


class IncompatibleProjectError(ScrapError):
    """Raised when a foreign project uses features that cannot be imported."""
    pass


class ProjectFormatError(ScrapError):
    """Raised when a project archive is malformed."""
    pass


class ConnectionCheckError(ScrapError):
    """Raised on structural misuse of the block graph (missing inputs, wrong connection kinds)."""

    def __init__(self, message: str, block_type: str, input_name: Optional[str] = None):
        super().__init__(message, {'block_type': block_type, 'input_name': input_name})
        self.block_type = block_type
        self.input_name = input_name
