"""Errors raised at load time and assemble time."""


class RomLoadError(Exception):
    """Raised when a ROM image cannot be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load ROM '{path}': {reason}")


class AssemblerError(Exception):
    """Raised on assembly errors.

    When several lines fail, ``errors`` holds one AssemblerError per line.
    """

    def __init__(self, message: str, line_num: int = 0, errors=None):
        self.line_num = line_num
        self.errors = errors or []
        super().__init__(f"Line {line_num}: {message}" if line_num else message)
