from rolesd.core.errors import (
    BackendStatusError,
    ConfigurationError,
    DecodeError,
    ExitCode,
    QueryError,
    RecordConversionError,
    RequestBuildError,
    RoleSDError,
    TransportError,
)

__all__ = [
    "BackendStatusError",
    "ConfigurationError",
    "DecodeError",
    "ExitCode",
    "QueryError",
    "RecordConversionError",
    "RequestBuildError",
    "RoleSDError",
    "TransportError",
]
