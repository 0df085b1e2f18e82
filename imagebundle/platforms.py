import dataclasses
import re
from typing import Any, Mapping, Optional

from .exceptions import InvalidPlatformFormat

PLATFORM_RE = re.compile(r"^(?P<os>[^/\s]+)/(?P<arch>[^/\s]+)(?:/(?P<variant>[^/\s]+))?$")

# Registries publish ARM64 images both with and without the "v8" variant
ARM64_ARCH = "arm64"
ARM64_DEFAULT_VARIANT = "v8"


@dataclasses.dataclass(frozen=True)
class PlatformSpec:
    """
    Platform an image variant is built for.

    Two specs are equal when their canonical strings are equal, which is the same as
    comparing the three fields since none of them may contain a slash.
    """

    os: str
    arch: str
    variant: str = ""

    @classmethod
    def parse(cls, value: str) -> "PlatformSpec":
        """
        Parse a platform string.

        Args:
            value (str):
                Platform in the format <os>/<arch>[/<variant>].
        Returns (PlatformSpec):
            Parsed platform.
        Raises:
            InvalidPlatformFormat:
                If the value doesn't match the expected format.
        """
        match = PLATFORM_RE.fullmatch(value or "")
        if not match:
            raise InvalidPlatformFormat(
                "Invalid platform '{0}' (required format: <os>/<arch>[/<variant>])".format(value)
            )
        return cls(match.group("os"), match.group("arch"), match.group("variant") or "")

    @classmethod
    def from_descriptor(cls, platform: Mapping[str, Any]) -> "PlatformSpec":
        """
        Create a platform from the 'platform' object of a manifest list entry.

        Args:
            platform (dict):
                Platform data as reported by the registry.
        Returns (PlatformSpec):
            Platform of the manifest.
        """
        return cls(
            platform.get("os", ""),
            platform.get("architecture", ""),
            platform.get("variant") or "",
        )

    @property
    def canonical(self) -> str:
        """Return the canonical form, os/arch or os/arch/variant."""
        if self.variant:
            return "{0}/{1}/{2}".format(self.os, self.arch, self.variant)
        return "{0}/{1}".format(self.os, self.arch)

    def arm64_fallback(self) -> Optional["PlatformSpec"]:
        """
        Get the platform to try when an arm64 platform without a variant isn't found.

        Returns (PlatformSpec|None):
            The same platform with the 'v8' variant, or None if the fallback doesn't apply.
        """
        if self.arch != ARM64_ARCH or self.variant:
            return None
        return dataclasses.replace(self, variant=ARM64_DEFAULT_VARIANT)

    def __str__(self) -> str:
        """Return the canonical form."""
        return self.canonical


DEFAULT_PLATFORM = PlatformSpec("linux", "amd64")
