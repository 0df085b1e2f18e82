import dataclasses
import logging
from typing import Any, Dict, List, Optional

import yaml
from marshmallow import Schema, ValidationError, fields, post_load, RAISE

from .exceptions import ConfigParseError

LOG = logging.getLogger("imagebundle")

# Name of the sanitized images file stored in image bundles
SANITIZED_CONFIG_NAME = "images.yaml"


@dataclasses.dataclass(frozen=True)
class Credentials:
    """Credentials for a source registry."""

    username: str
    password: str = ""

    def __repr__(self) -> str:
        """Hide the password."""
        return "Credentials(username={0!r}, password='***')".format(self.username)


@dataclasses.dataclass
class RegistryConfig:
    """Images requested from one source registry."""

    name: str
    images: Dict[str, List[str]]
    tls_verify: Optional[bool] = None
    credentials: Optional[Credentials] = None

    @property
    def verify_tls(self) -> bool:
        """Whether TLS of the registry should be verified. Verified unless disabled."""
        return self.tls_verify is not False


ImagesConfig = Dict[str, RegistryConfig]


class CredentialsSchema(Schema):
    """Validation schema for registry credentials."""

    username = fields.String(required=True)
    password = fields.String(required=False, load_default="")

    @post_load
    def make_credentials(self, data: Dict[str, Any], **kwargs: Any) -> Credentials:
        """Create a Credentials instance."""
        return Credentials(**data)


class RegistrySchema(Schema):
    """Validation schema for the configuration of one registry."""

    tls_verify = fields.Boolean(data_key="tlsVerify", required=False, load_default=None)
    credentials = fields.Nested(CredentialsSchema, required=False, load_default=None)
    images = fields.Dict(
        keys=fields.String(),
        values=fields.List(fields.String()),
        required=True,
    )


def parse(data: Any) -> ImagesConfig:
    """
    Validate loaded images configuration.

    Args:
        data (dict):
            Mapping of registry name -> registry configuration, as loaded from YAML.
    Returns (dict):
        Registry name -> RegistryConfig, in the order of the file.
    Raises:
        ConfigParseError:
            If the configuration doesn't pass validation.
    """
    if not isinstance(data, dict):
        raise ConfigParseError("Images config must be a mapping of registry names")

    schema = RegistrySchema(unknown=RAISE)
    config: ImagesConfig = {}
    for registry_name, registry_data in data.items():
        try:
            loaded = schema.load(registry_data or {})
        except ValidationError as e:
            raise ConfigParseError(
                "Invalid configuration of registry '{0}': {1}".format(registry_name, e.messages)
            ) from e
        config[str(registry_name)] = RegistryConfig(name=str(registry_name), **loaded)

    return config


def parse_file(path: str) -> ImagesConfig:
    """
    Read and validate an images file.

    Args:
        path (str):
            Path to the YAML images file.
    Returns (dict):
        Registry name -> RegistryConfig.
    Raises:
        ConfigParseError:
            If the file can't be read, isn't valid YAML or doesn't pass validation.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigParseError("Failed to read images file {0}: {1}".format(path, e)) from e

    return parse(data)


def sanitized(config: ImagesConfig) -> Dict[str, Any]:
    """
    Get the configuration as a plain mapping without credentials.

    Args:
        config (dict):
            Parsed images configuration.
    Returns (dict):
        Data which can be dumped to YAML.
    """
    data: Dict[str, Any] = {}
    for registry_name, registry in config.items():
        registry_data: Dict[str, Any] = {}
        if registry.tls_verify is not None:
            registry_data["tlsVerify"] = registry.tls_verify
        registry_data["images"] = {name: list(tags) for name, tags in registry.images.items()}
        data[registry_name] = registry_data
    return data


def write_sanitized_config(config: ImagesConfig, path: str) -> None:
    """
    Write the configuration without credentials.

    Args:
        config (dict):
            Parsed images configuration.
        path (str):
            Destination file.
    """
    LOG.debug("Writing sanitized images config to {0}".format(path))
    with open(path, "w") as f:
        yaml.safe_dump(sanitized(config), f, default_flow_style=False, sort_keys=False)
