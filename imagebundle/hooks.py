import sys
from typing import List

from pubtools.pluggy import pm, hookspec

# Define hooks here for any events which may be of interest for other projects
# consuming image bundles.


@hookspec
def imagebundle_image_copied(src_ref: str, dest_ref: str) -> None:
    """Invoked after an image has been copied to the staging registry.

    :param src_ref: Source image reference.
    :type src_ref: str
    :param dest_ref: Image reference in the staging registry.
    :type dest_ref: str
    """


@hookspec
def imagebundle_manifest_list_published(dest_ref: str, digests: List[str]) -> None:
    """Invoked after a manifest list has been uploaded to the staging registry.

    :param dest_ref: Tag reference the manifest list was uploaded to.
    :type dest_ref: str
    :param digests: Digests of the manifests contained in the manifest list.
    :type digests: list[str]
    """


@hookspec
def imagebundle_created(output_file: str) -> None:
    """Invoked after an image bundle has been written.

    :param output_file: Path of the image bundle.
    :type output_file: str
    """


pm.add_hookspecs(sys.modules[__name__])
