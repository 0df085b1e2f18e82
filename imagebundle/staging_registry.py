import logging
import os
import socket
from types import TracebackType
from typing import Any, Dict, Optional, Tuple, Type

import docker
import requests
from requests.adapters import HTTPAdapter
from typing_extensions import Self
from urllib3.util.retry import Retry

from .exceptions import RegistryStartupError

LOG = logging.getLogger("imagebundle")

DEFAULT_REGISTRY_IMAGE = "docker.io/library/registry:2"
DEFAULT_DOCKER_URL = "unix://var/run/docker.sock"
REGISTRY_PORT = 5000
REGISTRY_STORAGE_PATH = "/var/lib/registry"


def split_image_tag(image: str) -> Tuple[str, str]:
    """
    Split an image reference into repository and tag.

    Args:
        image (str):
            Image reference, e.g. 'localhost:5000/registry:2'.
    Returns ((str, str)):
        Repository and tag. Tag defaults to 'latest'.
    """
    repo, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, "latest"
    return repo, tag


def find_free_port(host: str) -> int:
    """Ask the OS for a port which is currently free on the given host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


class StagingRegistry:
    """
    Ephemeral Docker registry storing its data in a local directory.

    The registry runs in a container of the 'registry:2' image with the storage
    directory bind-mounted. It's meant to be used as a context manager: the container
    is removed on exit, the storage directory is left in place.
    """

    def __init__(
        self,
        storage_dir: str,
        image: str = DEFAULT_REGISTRY_IMAGE,
        base_url: str = DEFAULT_DOCKER_URL,
        host: str = "127.0.0.1",
        port: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> None:
        """
        Initialize.

        Args:
            storage_dir (str):
                Directory in which the registry stores its data.
            image (str):
                Registry image. Must be downloadable without extra permissions.
            base_url (str):
                Base URL of the Docker client.
            host (str):
                Host interface to publish the registry port on.
            port (int):
                Host port of the registry. A free port is picked if omitted.
            timeout (int):
                Default timeout for Docker API calls, in seconds.
        """
        self.storage_dir = os.path.abspath(storage_dir)
        self.image = image
        self.base_url = base_url
        self.host = host
        self.port = port or find_free_port(host)
        self.timeout = timeout
        self._client: Optional[docker.APIClient] = None
        self.container: Optional[Dict[str, Any]] = None

    @property
    def address(self) -> str:
        """Return host:port which the registry is reachable on."""
        return "{0}:{1}".format(self.host, self.port)

    @property
    def client(self) -> docker.APIClient:
        """Create the Docker API client lazily."""
        if self._client is None:
            kwargs: Dict[str, Any] = {"base_url": self.base_url, "version": "auto"}
            if self.timeout:
                kwargs["timeout"] = self.timeout
            self._client = docker.APIClient(**kwargs)
        return self._client

    def __enter__(self) -> Self:
        """Use the class as context manager. Returns instance upon invocation."""
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Remove the registry container when used as a context manager."""
        if exc_type is None:
            self.stop()
            return

        # an error is already propagating, don't replace it
        try:
            self.stop()
        except docker.errors.DockerException as e:
            LOG.warning("Failed to remove staging registry container: {0}".format(e))

    def listen_and_serve(self, retries: int = 10) -> None:
        """
        Start the registry container and wait until it accepts requests.

        Args:
            retries (int):
                Number of readiness checks before giving up.
        Raises:
            RegistryStartupError:
                If the container can't be started or the registry never becomes ready.
        """
        LOG.info(
            "Starting staging registry on {0} with storage {1}".format(
                self.address, self.storage_dir
            )
        )
        try:
            repo, tag = split_image_tag(self.image)
            self.client.pull(repo, tag=tag)
            host_config = self.client.create_host_config(
                binds={self.storage_dir: {"bind": REGISTRY_STORAGE_PATH, "mode": "rw"}},
                port_bindings={REGISTRY_PORT: (self.host, self.port)},
            )
            self.container = self.client.create_container(
                self.image,
                detach=True,
                ports=[REGISTRY_PORT],
                host_config=host_config,
                user="{0}:{1}".format(os.getuid(), os.getgid()),
            )
            self.client.start(self.container["Id"])
        except docker.errors.DockerException as e:
            raise RegistryStartupError("Failed to start staging registry: {0}".format(e)) from e

        self.wait_until_ready(retries)
        LOG.info("Staging registry is serving on {0}".format(self.address))

    def wait_until_ready(self, retries: int = 10) -> None:
        """
        Poll the registry API base endpoint until it responds.

        Args:
            retries (int):
                Number of attempts.
        Raises:
            RegistryStartupError:
                If the registry doesn't respond successfully.
        """
        session = requests.Session()
        retry = Retry(
            total=retries,
            read=retries,
            connect=retries,
            backoff_factor=0.2,
            status_forcelist=(500, 502, 503, 504),
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)

        url = "http://{0}/v2/".format(self.address)
        try:
            response = session.get(url, timeout=5)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RegistryStartupError(
                "Staging registry at {0} is not ready: {1}".format(self.address, e)
            ) from e
        finally:
            session.close()

    def stop(self) -> None:
        """Remove the registry container. The storage directory is kept."""
        if self.container is None:
            return
        LOG.debug("Removing staging registry container {0}".format(self.container["Id"]))
        self.client.remove_container(self.container["Id"], force=True)
        self.container = None
