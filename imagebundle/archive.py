import logging
import os
import tarfile

from .exceptions import BundleError

LOG = logging.getLogger("imagebundle")


def archive_directory(source_dir: str, output_file: str) -> None:
    """
    Write the contents of a directory to a tarball.

    Paths inside the archive are relative to the directory. The tarball is written to
    a temporary file next to the output and renamed when complete, so a failed run
    never leaves a partial bundle at the output path.

    Args:
        source_dir (str):
            Directory to archive.
        output_file (str):
            Path of the tarball. Compressed with gzip if it ends with '.gz' or '.tgz'.
    """
    mode = "w:gz" if output_file.endswith((".gz", ".tgz")) else "w"
    partial_file = "{0}.partial".format(output_file)

    LOG.debug("Archiving {0} to {1}".format(source_dir, output_file))
    try:
        with tarfile.open(partial_file, mode) as tar:
            for name in sorted(os.listdir(source_dir)):
                tar.add(os.path.join(source_dir, name), arcname=name)
        os.replace(partial_file, output_file)
    finally:
        if os.path.exists(partial_file):
            os.remove(partial_file)


def extract_archive(archive_file: str, dest_dir: str) -> None:
    """
    Extract a tarball written by 'archive_directory'.

    Args:
        archive_file (str):
            Path of the tarball, optionally compressed.
        dest_dir (str):
            Directory to extract to.
    Raises:
        BundleError:
            If the tarball can't be read or has members pointing outside of dest_dir.
    """
    dest_dir = os.path.abspath(dest_dir)
    LOG.debug("Extracting {0} to {1}".format(archive_file, dest_dir))
    try:
        with tarfile.open(archive_file, "r:*") as tar:
            members = tar.getmembers()
            for member in members:
                target = os.path.abspath(os.path.join(dest_dir, member.name))
                if os.path.commonpath([dest_dir, target]) != dest_dir:
                    raise BundleError(
                        "Unsafe path {0} in image bundle {1}".format(member.name, archive_file)
                    )
                if not (member.isfile() or member.isdir()):
                    raise BundleError(
                        "Unsupported member {0} in image bundle {1}".format(
                            member.name, archive_file
                        )
                    )
            tar.extractall(dest_dir, members=members)
    except (OSError, tarfile.TarError) as e:
        raise BundleError("Failed to read image bundle {0}: {1}".format(archive_file, e)) from e
