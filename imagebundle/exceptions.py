from typing import Optional


class InvalidPlatformFormat(ValueError):
    """Occurs when a platform string doesn't have the format <os>/<arch>[/<variant>]."""


class ConfigParseError(Exception):
    """Occurs when the images file cannot be read or doesn't pass validation."""


class RegistryStartupError(Exception):
    """Occurs when the staging registry couldn't be started or never became ready."""


class OutputExists(Exception):
    """Occurs when the output bundle already exists and overwriting wasn't requested."""


class BundleError(Exception):
    """Occurs when an image bundle can't be read or extracted."""


class SkopeoError(Exception):
    """Base class for failed skopeo operations. Keeps the raw tool output for debugging."""

    def __init__(self, message: str, output: Optional[str] = None) -> None:
        """
        Initialize.

        Args:
            message (str):
                Error description.
            output (str):
                Combined stdout and stderr of the failed command.
        """
        super().__init__(message)
        self.output = output or ""


class InspectError(SkopeoError):
    """Occurs when the manifest of a source image couldn't be inspected."""


class CopyError(SkopeoError):
    """Occurs when an image couldn't be copied to the staging registry."""


class ManifestPublishError(SkopeoError):
    """Occurs when a manifest list couldn't be uploaded to the staging registry."""


class RegistryLoginError(SkopeoError):
    """Occurs when logging in to a source registry fails."""
