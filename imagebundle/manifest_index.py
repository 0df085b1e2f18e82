import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Mapping, Union

from .platforms import PlatformSpec
from .types import Manifest, ManifestList
from .utils.misc import task_status

LOG = logging.getLogger("imagebundle")

MANIFEST_LIST_TYPE = "application/vnd.docker.distribution.manifest.list.v2+json"
MANIFEST_OCI_LIST_TYPE = "application/vnd.oci.image.index.v1+json"


@dataclasses.dataclass
class SourceManifestEntry:
    """One platform's manifest descriptor taken from an upstream manifest list."""

    platform: PlatformSpec
    digest: str
    descriptor: Manifest

    @classmethod
    def from_descriptor(cls, descriptor: Manifest) -> "SourceManifestEntry":
        """Create an entry from a raw manifest list descriptor."""
        return cls(
            platform=PlatformSpec.from_descriptor(descriptor.get("platform") or {}),
            digest=descriptor.get("digest") or "",
            descriptor=descriptor,
        )


ManifestIndex = Dict[str, SourceManifestEntry]


@dataclasses.dataclass
class Resolved:
    """Requested platform was found in the manifest list."""

    entry: SourceManifestEntry

    @property
    def has_digest(self) -> bool:
        """Whether the found manifest can be pinned by digest."""
        return self.entry.digest != ""


@dataclasses.dataclass
class Unresolved:
    """Requested platform has no matching manifest in the manifest list."""

    requested: PlatformSpec


ResolutionResult = Union[Resolved, Unresolved]


def is_manifest_list(manifest: Mapping[str, Any]) -> bool:
    """
    Check whether an inspected manifest is a manifest list.

    Args:
        manifest (dict):
            Raw manifest returned by the registry.
    Returns (bool):
        True for Docker manifest lists and OCI image indexes.
    """
    if manifest.get("mediaType") in (MANIFEST_LIST_TYPE, MANIFEST_OCI_LIST_TYPE):
        return True
    # OCI indexes aren't required to set mediaType
    return isinstance(manifest.get("manifests"), list)


def entries_from_manifest_list(manifest_list: ManifestList) -> List[SourceManifestEntry]:
    """
    Get manifest entries of a manifest list in upstream order.

    Args:
        manifest_list (dict):
            Source manifest list.
    Returns ([SourceManifestEntry]):
        One entry per manifest descriptor.
    """
    return [
        SourceManifestEntry.from_descriptor(descriptor)
        for descriptor in manifest_list.get("manifests") or []
    ]


def build_index(entries: Iterable[SourceManifestEntry]) -> ManifestIndex:
    """
    Map canonical platform strings to manifest entries.

    A platform repeated in the input is overwritten by its last occurrence. Entries
    without a digest are kept.

    Args:
        entries ([SourceManifestEntry]):
            Entries of the source manifest list.
    Returns (dict):
        Canonical platform string -> SourceManifestEntry.
    """
    index: ManifestIndex = {}
    for entry in entries:
        index[entry.platform.canonical] = entry
    return index


def resolve_platform(
    index: ManifestIndex, requested: PlatformSpec, image_ref: str = ""
) -> ResolutionResult:
    """
    Find the manifest matching a requested platform.

    An arm64 platform without a variant is retried once as arm64/v8. No other
    architecture gets a fallback.

    Args:
        index (dict):
            Manifest index of the source image.
        requested (PlatformSpec):
            Platform requested by the user.
        image_ref (str):
            Source image reference, only used in the log message.
    Returns (Resolved|Unresolved):
        Result of the lookup.
    """
    entry = index.get(requested.canonical)
    if entry is None:
        fallback = requested.arm64_fallback()
        if fallback is not None:
            entry = index.get(fallback.canonical)
            if entry is not None:
                LOG.debug(
                    "Platform {0} of {1} resolved as {2}".format(requested, image_ref, fallback)
                )

    if entry is None:
        LOG.warning(
            "Could not find platform {0} for image {1}, continuing without a digest".format(
                requested, image_ref
            ),
            extra=task_status("unresolved-platform"),
        )
        return Unresolved(requested)

    return Resolved(entry)
