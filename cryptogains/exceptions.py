"""Custom exceptions for cryptogains."""


class GainsError(Exception):
    """Base exception for capital gains computation errors."""


class StructuralError(GainsError):
    """Raised when one or more transactions have an invalid shape."""

    def __init__(self, problems: dict[str, str]):
        self.problems = problems
        details = "; ".join(f"{tx_id}: {message}" for tx_id, message in problems.items())
        super().__init__(f"Malformed transaction(s): {details}")


class ConfigurationError(GainsError):
    """Raised when engine settings are invalid. Fatal for a computation pass."""

    def __init__(self, setting: str, message: str):
        self.setting = setting
        super().__init__(f"Invalid setting '{setting}': {message}")


class SourceImportError(GainsError):
    """Raised when a transaction source cannot be parsed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Import error from {source}: {message}")


class UnknownSourceFormatError(SourceImportError):
    """Raised when no known format recognizes a file's content."""

    def __init__(self, source: str):
        super().__init__(source, "Cannot detect the file format. Use --format to specify.")


class PortfolioError(GainsError):
    """Raised when a portfolio file cannot be read or is inconsistent."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Portfolio error for {path}: {message}")
