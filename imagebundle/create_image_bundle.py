import logging
import os
import shutil
import sys
import tempfile
from typing import Any, Dict, List, Optional, Sequence

from pubtools.pluggy import pm, task_context

from . import hooks  # noqa: F401
from .archive import archive_directory
from .command_executor import LocalExecutor
from .config import SANITIZED_CONFIG_NAME, ImagesConfig, parse_file, write_sanitized_config
from .exceptions import (
    ConfigParseError,
    InvalidPlatformFormat,
    OutputExists,
    RegistryStartupError,
    SkopeoError,
)
from .image_bundler import ImageBundler
from .platforms import DEFAULT_PLATFORM, PlatformSpec
from .staging_registry import DEFAULT_DOCKER_URL, DEFAULT_REGISTRY_IMAGE, StagingRegistry
from .utils.misc import add_args_env_variables, log_step, setup_arg_parser

LOG = logging.getLogger("imagebundle")

REGISTRY_FAILURE_EXIT_CODE = 2

CREATE_IMAGE_BUNDLE_ARGS = {
    ("--images-file",): {
        "help": "YAML file containing list of images to create bundle from.",
        "required": True,
        "type": str,
    },
    ("--platform",): {
        "help": "Platform to download images for (required format: <os>/<arch>[/<variant>]). "
        "Multiple can be specified. Defaults to linux/amd64.",
        "required": False,
        "type": str,
        "action": "append",
        "metavar": "OS/ARCH[/VARIANT]",
    },
    ("--output-file",): {
        "help": "Output file to write image bundle to.",
        "required": False,
        "type": str,
        "default": "images.tar",
    },
    ("--overwrite",): {
        "help": "Overwrite image bundle file if it already exists.",
        "required": False,
        "type": bool,
    },
    ("--verbose",): {
        "help": "Log debug messages, including skopeo debug output.",
        "required": False,
        "type": bool,
    },
    ("--registry-image",): {
        "help": "Image used to run the staging registry. Must be downloadable without extra "
        "permissions.",
        "required": False,
        "type": str,
        "default": DEFAULT_REGISTRY_IMAGE,
        "group": "Staging registry",
    },
    ("--docker-url",): {
        "help": "URL of the docker client that should run the staging registry. "
        "Can be specified by env variable DOCKER_HOST. Local socket by default.",
        "required": False,
        "type": str,
        "env_variable": "DOCKER_HOST",
        "group": "Staging registry",
    },
}


def parse_platforms(values: Optional[Sequence[str]]) -> List[PlatformSpec]:
    """
    Parse requested platforms, dropping duplicates.

    Args:
        values ([str]):
            Platform strings. linux/amd64 is used if none are given.
    Returns ([PlatformSpec]):
        Platforms in the order they were requested.
    Raises:
        InvalidPlatformFormat:
            If any of the values is malformed.
    """
    if not values:
        return [DEFAULT_PLATFORM]

    platforms: List[PlatformSpec] = []
    for value in values:
        platform = PlatformSpec.parse(value)
        if platform not in platforms:
            platforms.append(platform)
    return platforms


@log_step("Check output file")
def check_output_file(output_file: str, overwrite: bool = False) -> None:
    """
    Make sure an existing bundle isn't overwritten by accident.

    Args:
        output_file (str):
            Path of the image bundle.
        overwrite (bool):
            Whether an existing file may be replaced.
    Raises:
        OutputExists:
            If the file exists and overwriting wasn't requested.
    """
    if not overwrite and os.path.exists(output_file):
        raise OutputExists(
            "{0} already exists: specify --overwrite to overwrite existing file".format(
                output_file
            )
        )


@log_step("Parse image bundle config")
def parse_images_file(images_file: str) -> ImagesConfig:
    """Parse the images file."""
    config = parse_file(images_file)
    LOG.debug("Images config: {0}".format(config))
    return config


@log_step("Archive images")
def write_bundle(config: ImagesConfig, staging_dir: str, output_file: str) -> None:
    """
    Write the sanitized config next to the registry data and archive the directory.

    Args:
        config (dict):
            Parsed images configuration.
        staging_dir (str):
            Storage directory of the staging registry.
        output_file (str):
            Path of the image bundle.
    """
    write_sanitized_config(config, os.path.join(staging_dir, SANITIZED_CONFIG_NAME))
    LOG.info("Archiving images to {0}".format(output_file))
    archive_directory(staging_dir, output_file)


def remove_staging_dir(staging_dir: str, tolerate_err: bool = False) -> None:
    """
    Remove the temporary registry storage.

    Args:
        staging_dir (str):
            Directory to remove.
        tolerate_err (bool):
            Only log a failure instead of raising it.
    """
    LOG.debug("Removing temporary directory {0}".format(staging_dir))
    try:
        shutil.rmtree(staging_dir)
    except OSError as e:
        if not tolerate_err:
            raise
        LOG.warning("Failed to remove temporary directory {0}: {1}".format(staging_dir, e))


def create_image_bundle(
    images_file: str,
    platforms: Optional[Sequence[str]] = None,
    output_file: str = "images.tar",
    overwrite: bool = False,
    verbose: bool = False,
    registry_image: str = DEFAULT_REGISTRY_IMAGE,
    docker_url: str = DEFAULT_DOCKER_URL,
) -> None:
    """
    Create an image bundle.

    Args:
        images_file (str):
            YAML file containing list of images to create bundle from.
        platforms ([str]):
            Platforms to copy, in the format <os>/<arch>[/<variant>].
        output_file (str):
            Path of the image bundle.
        overwrite (bool):
            Whether to overwrite an existing image bundle.
        verbose (bool):
            Whether skopeo should produce debug output.
        registry_image (str):
            Image used to run the staging registry.
        docker_url (str):
            URL of the docker client that should run the staging registry.
    """
    requested_platforms = parse_platforms(platforms)
    check_output_file(output_file, overwrite)
    config = parse_images_file(images_file)

    output_dir = os.path.dirname(os.path.abspath(output_file))
    staging_dir = tempfile.mkdtemp(prefix=".image-bundle-", dir=output_dir)
    LOG.debug("Created temporary directory {0}".format(staging_dir))
    try:
        with StagingRegistry(staging_dir, image=registry_image, base_url=docker_url) as registry:
            registry.listen_and_serve()
            with LocalExecutor() as executor:
                bundler = ImageBundler(
                    config, requested_platforms, executor, registry.address, debug=verbose
                )
                bundler.copy_images()
            write_bundle(config, staging_dir, output_file)
    except BaseException:
        remove_staging_dir(staging_dir, tolerate_err=True)
        raise
    remove_staging_dir(staging_dir)

    pm.hook.imagebundle_created(output_file=output_file)


def construct_kwargs(args: Any) -> Dict[str, Any]:
    """
    Construct a kwargs dictionary based on the entered command line arguments.

    Args:
        args (argparse.Namespace):
            Parsed command line arguments.
    Returns (dict):
        Keyword arguments for the 'create_image_bundle' function.
    """
    kwargs = dict(vars(args))

    # in args.__dict__ unspecified bool values have 'None' instead of 'False'
    for name, attributes in CREATE_IMAGE_BUNDLE_ARGS.items():
        if attributes["type"] is bool:
            bool_var = name[0].lstrip("-").replace("-", "_")
            if kwargs[bool_var] is None:
                kwargs[bool_var] = False

    kwargs["platforms"] = kwargs.pop("platform")
    kwargs["docker_url"] = kwargs["docker_url"] or DEFAULT_DOCKER_URL

    return kwargs


def setup_args() -> Any:
    """Set up argparser without extra parameters, this method is used for auto doc generation."""
    return setup_arg_parser(
        CREATE_IMAGE_BUNDLE_ARGS, description="Create a bundle of container images."
    )


def create_image_bundle_main(sysargs: Optional[List[str]] = None) -> None:
    """Entrypoint for image bundle creation."""
    parser = setup_args()
    if sysargs:
        args = parser.parse_args(sysargs[1:])
    else:
        args = parser.parse_args()  # pragma: no cover"
    args = add_args_env_variables(args, CREATE_IMAGE_BUNDLE_ARGS)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    kwargs = construct_kwargs(args)
    try:
        with task_context():
            create_image_bundle(**kwargs)
    except RegistryStartupError as e:
        LOG.error("Error serving staging registry: {0}".format(e))
        sys.exit(REGISTRY_FAILURE_EXIT_CODE)
    except (SkopeoError, InvalidPlatformFormat, ConfigParseError, OutputExists) as e:
        # failed skopeo commands have already logged their output
        LOG.error(str(e))
        sys.exit(1)
