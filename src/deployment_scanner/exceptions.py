"""Custom exceptions for the deployment scanner package."""


class ScannerError(Exception):
    """Base exception for all deployment scanner errors."""
    pass


class ScannerConfigError(ScannerError):
    """Scanner cannot be started with the given configuration."""
    pass


class ManagementError(ScannerError):
    """Error talking to the management execution facility."""
    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ContentStoreError(ScannerError, OSError):
    """Deployment content could not be stored."""
    pass
