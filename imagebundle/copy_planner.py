import dataclasses
from typing import Optional

from .config import Credentials
from .manifest_index import Resolved, ResolutionResult
from .platforms import PlatformSpec

DOCKER_TRANSPORT = "docker://"


@dataclasses.dataclass(frozen=True)
class CopyRequest:
    """Description of one skopeo copy to the staging registry."""

    src: str
    dst: str
    platform: PlatformSpec
    src_tls_verify: bool = True
    dest_tls_verify: bool = False
    src_credentials: Optional[Credentials] = None
    debug: bool = False
    digest: str = ""

    @property
    def by_digest(self) -> bool:
        """Whether the copy is pinned to a digest."""
        return self.digest != ""


def tag_reference(host: str, image_name: str, tag: str) -> str:
    """Return a tag-qualified image reference."""
    return "{0}/{1}:{2}".format(host, image_name, tag)


def digest_reference(host: str, image_name: str, digest: str) -> str:
    """Return a digest-qualified image reference."""
    return "{0}/{1}@{2}".format(host, image_name, digest)


def plan_copy(
    registry_name: str,
    image_name: str,
    tag: str,
    resolution: ResolutionResult,
    staging_address: str,
    requested: PlatformSpec,
    src_tls_verify: bool = True,
    src_credentials: Optional[Credentials] = None,
    debug: bool = False,
) -> CopyRequest:
    """
    Plan the copy of one platform of an image to the staging registry.

    Platforms resolved with a digest are copied by digest. Everything else, including
    unresolved platforms, is copied by tag and skopeo picks the platform itself using
    the platform filter.

    Args:
        registry_name (str):
            Source registry host.
        image_name (str):
            Image repository, e.g. 'library/nginx'.
        tag (str):
            Requested tag.
        resolution (Resolved|Unresolved):
            Result of resolving the requested platform.
        staging_address (str):
            host:port of the staging registry.
        requested (PlatformSpec):
            Platform requested by the user.
        src_tls_verify (bool):
            Whether to verify TLS of the source registry.
        src_credentials (Credentials):
            Optional credentials for the source registry.
        debug (bool):
            Whether skopeo should produce debug output.
    Returns (CopyRequest):
        Copy description.
    """
    platform = requested
    digest = ""
    if isinstance(resolution, Resolved):
        platform = resolution.entry.platform
        if resolution.has_digest:
            digest = resolution.entry.digest

    if digest:
        src = digest_reference(registry_name, image_name, digest)
        dst = digest_reference(staging_address, image_name, digest)
    else:
        src = tag_reference(registry_name, image_name, tag)
        dst = tag_reference(staging_address, image_name, tag)

    return CopyRequest(
        src=DOCKER_TRANSPORT + src,
        dst=DOCKER_TRANSPORT + dst,
        platform=platform,
        src_tls_verify=src_tls_verify,
        dest_tls_verify=False,
        src_credentials=src_credentials,
        debug=debug,
        digest=digest,
    )
