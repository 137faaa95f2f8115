"""
Upload / parsing errors.

All of them derive from ValueError so the API layer can keep treating
"bad input" uniformly as a 400.
"""


class BondAnalyzerError(ValueError):
    """Base class for every error raised while ingesting a workbook."""


class HeaderNotFoundError(BondAnalyzerError):
    """No row in the sheet looks like the expected header row."""

    def __init__(self, sheet: str, tokens):
        self.sheet = sheet
        self.tokens = tuple(tokens)
        super().__init__(f"Could not find header row in the '{sheet}' sheet")


class EmptyResultError(BondAnalyzerError):
    """Parsing finished but no row survived validation."""

    def __init__(self, message: str = "No valid bond data found in the file"):
        super().__init__(message)


class RowParseError(BondAnalyzerError):
    """A single data row could not be converted. Caught per row, never surfaced."""

    def __init__(self, row_index: int, reason: str):
        self.row_index = row_index
        super().__init__(f"Row {row_index}: {reason}")


class FileReadError(BondAnalyzerError):
    """The uploaded bytes could not be read as a workbook."""


class UploadInProgressError(BondAnalyzerError):
    """Another upload is still being processed."""

    def __init__(self):
        super().__init__("Another file is still being processed, try again shortly")
