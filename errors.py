from typing import Optional


class TrialSynthError(Exception):
    pass


class ConfigError(TrialSynthError):
    pass


class TableReadError(TrialSynthError):
    pass


class TableWriteError(TrialSynthError):
    pass


class TableParseError(TrialSynthError):
    """A persisted row could not be decoded.

    ``line`` is 1-based; ``column`` is the column name from the table layout
    (None when the row as a whole is malformed, e.g. wrong field count).
    """

    def __init__(
        self,
        reason: str,
        line: int,
        column: Optional[str] = None,
        value: Optional[str] = None,
    ):
        self.reason = reason
        self.line = line
        self.column = column
        self.value = value
        where = f"line {line}" if column is None else f"line {line}, column {column}"
        detail = f"{where}: {reason}"
        if value is not None:
            detail += f" (got {value!r})"
        super().__init__(detail)
