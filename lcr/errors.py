from __future__ import annotations


class ClusterError(Exception):
    """Base class for everything the runtime raises on purpose."""


class SetupFailure(ClusterError):
    """A service's own setup subcommand exited non-zero."""

    def __init__(self, message: str, command: list[str] | None = None, output: str = "") -> None:
        super().__init__(message)
        self.command = command or []
        self.output = output


class ConfigIOError(ClusterError):
    """Generated configuration could not be read back."""


class IdentityConflict(ClusterError):
    """Certificate/key pair found half present; nothing was touched."""

    def __init__(self, message: str, cert_path: str = "", key_path: str = "") -> None:
        super().__init__(message)
        self.cert_path = cert_path
        self.key_path = key_path


class PortUnknown(ClusterError):
    def __init__(self, service: str, port_kind: str) -> None:
        super().__init__(f"no port convention for service '{service}' and port kind '{port_kind}'")
        self.service = service
        self.port_kind = port_kind


class GrantUnavailable(ClusterError):
    pass


class HealthTimeout(ClusterError, TimeoutError):
    pass


class RenderError(ClusterError):
    pass
