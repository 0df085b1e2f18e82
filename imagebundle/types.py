from typing_extensions import TypedDict
from typing import List


Platform = TypedDict(
    "Platform",
    {
        "architecture": str,
        "os": str,
        "os.version": str,
        "os.features": List[str],
        "variant": str,
        "features": List[str],
    },
    total=False,
)


class Manifest(TypedDict, total=False):
    """Typed dict used to store a single manifest descriptor of a manifest list."""

    mediaType: str
    size: int
    digest: str
    platform: Platform


class ManifestList(TypedDict, total=False):
    """Typed dict used to store manifest list data."""

    schemaVersion: int
    mediaType: str
    manifests: List[Manifest]
