from __future__ import annotations


class DeployError(Exception):
    pass


class ChartLoadError(DeployError):
    pass


class OverrideError(DeployError):
    pass


class RenderError(DeployError):
    def __init__(self, message: str, *, template: str | None = None, key: str | None = None) -> None:
        super().__init__(message)
        self.template = template
        self.key = key


class ValuesValidationError(DeployError):
    pass


class ReleaseNotFoundError(DeployError):
    pass


class ReleaseExistsError(DeployError):
    pass


class InvalidReleaseNameError(DeployError):
    pass


class ClusterError(DeployError):
    def __init__(self, message: str, *, command: list[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr
