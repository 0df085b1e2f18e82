import logging
import os
import sys
import tempfile
import time
from typing import Any, Dict, List, Optional

from pubtools.pluggy import task_context

from .archive import extract_archive
from .config import SANITIZED_CONFIG_NAME, ImagesConfig, parse_file
from .create_image_bundle import REGISTRY_FAILURE_EXIT_CODE, remove_staging_dir
from .exceptions import BundleError, ConfigParseError, RegistryStartupError
from .staging_registry import DEFAULT_DOCKER_URL, DEFAULT_REGISTRY_IMAGE, StagingRegistry
from .utils.misc import add_args_env_variables, log_step, setup_arg_parser

LOG = logging.getLogger("imagebundle")

SERVE_IMAGE_BUNDLE_ARGS = {
    ("--image-bundle",): {
        "help": "Image bundle to serve.",
        "required": True,
        "type": str,
    },
    ("--listen-address",): {
        "help": "Address to listen on.",
        "required": False,
        "type": str,
        "default": "127.0.0.1",
    },
    ("--listen-port",): {
        "help": "Port to listen on. A free port is picked if omitted.",
        "required": False,
        "type": int,
        "default": 0,
    },
    ("--registry-image",): {
        "help": "Image used to run the registry. Must be downloadable without extra "
        "permissions.",
        "required": False,
        "type": str,
        "default": DEFAULT_REGISTRY_IMAGE,
        "group": "Registry",
    },
    ("--docker-url",): {
        "help": "URL of the docker client that should run the registry. "
        "Can be specified by env variable DOCKER_HOST. Local socket by default.",
        "required": False,
        "type": str,
        "env_variable": "DOCKER_HOST",
        "group": "Registry",
    },
}


@log_step("Extract image bundle")
def extract_bundle(image_bundle: str, dest_dir: str) -> ImagesConfig:
    """
    Extract an image bundle and read the images it contains.

    Args:
        image_bundle (str):
            Path of the image bundle.
        dest_dir (str):
            Directory to extract to.
    Returns (dict):
        Images configuration stored in the bundle, without credentials.
    """
    if not os.path.isfile(image_bundle):
        raise BundleError("Image bundle {0} doesn't exist".format(image_bundle))
    extract_archive(image_bundle, dest_dir)
    return parse_file(os.path.join(dest_dir, SANITIZED_CONFIG_NAME))


def wait_for_interrupt() -> None:
    """Block until the process is interrupted."""
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        LOG.info("Interrupted, stopping registry")


def serve_image_bundle(
    image_bundle: str,
    listen_address: str = "127.0.0.1",
    listen_port: int = 0,
    registry_image: str = DEFAULT_REGISTRY_IMAGE,
    docker_url: str = DEFAULT_DOCKER_URL,
) -> None:
    """
    Serve the images of an image bundle from a registry until interrupted.

    Args:
        image_bundle (str):
            Path of the image bundle.
        listen_address (str):
            Address to listen on.
        listen_port (int):
            Port to listen on. A free port is picked if 0.
        registry_image (str):
            Image used to run the registry.
        docker_url (str):
            URL of the docker client that should run the registry.
    """
    storage_dir = tempfile.mkdtemp(prefix=".image-bundle-serve-")
    LOG.debug("Created temporary directory {0}".format(storage_dir))
    try:
        config = extract_bundle(image_bundle, storage_dir)
        with StagingRegistry(
            storage_dir,
            image=registry_image,
            base_url=docker_url,
            host=listen_address,
            port=listen_port or None,
        ) as registry:
            registry.listen_and_serve()
            LOG.info("Serving image bundle {0} on {1}".format(image_bundle, registry.address))
            for registry_name, registry_config in config.items():
                for image_name, tags in registry_config.images.items():
                    LOG.info(
                        "  {0}/{1}: {2}".format(registry_name, image_name, ", ".join(tags))
                    )
            wait_for_interrupt()
    except BaseException:
        remove_staging_dir(storage_dir, tolerate_err=True)
        raise
    remove_staging_dir(storage_dir)


def construct_kwargs(args: Any) -> Dict[str, Any]:
    """
    Construct a kwargs dictionary based on the entered command line arguments.

    Args:
        args (argparse.Namespace):
            Parsed command line arguments.
    Returns (dict):
        Keyword arguments for the 'serve_image_bundle' function.
    """
    kwargs = dict(vars(args))
    kwargs["docker_url"] = kwargs["docker_url"] or DEFAULT_DOCKER_URL
    return kwargs


def setup_args() -> Any:
    """Set up argparser without extra parameters, this method is used for auto doc generation."""
    return setup_arg_parser(
        SERVE_IMAGE_BUNDLE_ARGS, description="Serve the images of an image bundle."
    )


def serve_image_bundle_main(sysargs: Optional[List[str]] = None) -> None:
    """Entrypoint for serving an image bundle."""
    parser = setup_args()
    if sysargs:
        args = parser.parse_args(sysargs[1:])
    else:
        args = parser.parse_args()  # pragma: no cover"
    args = add_args_env_variables(args, SERVE_IMAGE_BUNDLE_ARGS)

    logging.basicConfig(level=logging.INFO)

    kwargs = construct_kwargs(args)
    try:
        with task_context():
            serve_image_bundle(**kwargs)
    except RegistryStartupError as e:
        LOG.error("Error serving image bundle: {0}".format(e))
        sys.exit(REGISTRY_FAILURE_EXIT_CODE)
    except (BundleError, ConfigParseError) as e:
        LOG.error(str(e))
        sys.exit(1)
