class MigratorError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(MigratorError):
    """Errors related to configuration loading or validation."""
    pass

class TransportError(MigratorError):
    """Errors talking to the target system's HTTP API."""
    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code

class SourceConnectionError(MigratorError):
    """The source instance could not be reached or validated."""
    pass

class ReferenceFetchError(MigratorError):
    """Root folders or quality profiles could not be loaded."""
    pass

class PreviewError(MigratorError):
    """The import preview could not be computed."""
    pass

class ImportSubmitError(MigratorError):
    """The import job could not be submitted or observed."""
    pass

class MappingError(MigratorError):
    """A manual mapping entry refers to an unknown source or target entity."""
    pass

class WizardStateError(MigratorError):
    """An action was invoked from a step that does not allow it."""
    pass

class UserAbortError(MigratorError):
    """Error raised when user cancels an operation."""
    pass
