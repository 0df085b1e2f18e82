from copy import deepcopy
import logging
from typing import Any, Dict, List, Optional

from .config import Credentials
from .manifest_index import SourceManifestEntry
from .types import ManifestList

LOG = logging.getLogger("imagebundle")


class DestinationManifestList:
    """
    Manifest list mirroring only the platforms copied to the staging registry.

    Header fields (schemaVersion, mediaType, ...) are taken verbatim from the source
    manifest list. Only entries with a digest whose copy succeeded are added, each digest once.
    """

    def __init__(self, header: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize.

        Args:
            header (dict):
                Top-level fields of the manifest list, except 'manifests'.
        """
        self.header = dict(header or {})
        self.header.pop("manifests", None)
        self.manifests: List[SourceManifestEntry] = []

    @classmethod
    def from_source(cls, source_manifest_list: ManifestList) -> "DestinationManifestList":
        """Create an empty destination list sharing the header of a source manifest list."""
        return cls(deepcopy(dict(source_manifest_list)))

    def append(self, entry: SourceManifestEntry, copy_succeeded: bool) -> bool:
        """
        Add an entry whose image was copied.

        Args:
            entry (SourceManifestEntry):
                Manifest entry of the copied platform.
            copy_succeeded (bool):
                Whether the digest copy of this entry succeeded.
        Returns (bool):
            Whether the entry was added.
        """
        if not copy_succeeded or not entry.digest:
            return False
        if self.contains(entry):
            return False
        self.manifests.append(entry)
        return True

    def contains(self, entry: SourceManifestEntry) -> bool:
        """Whether a manifest with the digest of the entry was already added."""
        return entry.digest in self.digests

    def should_publish(self) -> bool:
        """Whether the manifest list has any entry and should be uploaded."""
        return bool(self.manifests)

    @property
    def digests(self) -> List[str]:
        """Digests of the contained manifests, in order."""
        return [entry.digest for entry in self.manifests]

    def to_dict(self) -> ManifestList:
        """Return the manifest list document."""
        manifest_list = deepcopy(self.header)
        manifest_list["manifests"] = [deepcopy(entry.descriptor) for entry in self.manifests]
        return manifest_list  # type: ignore[return-value]

    def publish(
        self,
        executor: Any,
        dest_ref: str,
        src_credentials: Optional[Credentials] = None,
        debug: bool = False,
    ) -> str:
        """
        Upload the manifest list to a tag of the staging registry.

        All manifests referenced by the list must already be present in the staging
        registry.

        Args:
            executor (Executor):
                Executor running skopeo.
            dest_ref (str):
                Tag-qualified destination reference, including the transport.
            src_credentials (Credentials):
                Credentials of the source registry, passed to skopeo unchanged.
            debug (bool):
                Whether skopeo should produce debug output.
        Returns (str):
            Output of skopeo.
        """
        LOG.info(
            "Publishing manifest list with {0} manifest(s) to {1}".format(
                len(self.manifests), dest_ref
            )
        )
        return executor.skopeo_copy_manifest(
            self.to_dict(),
            dest_ref,
            dest_tls_verify=False,
            src_credentials=src_credentials,
            debug=debug,
        )
