import logging
from typing import Any, Optional, Sequence, Tuple

from pubtools.pluggy import pm

from . import hooks  # noqa: F401
from .config import Credentials, ImagesConfig, RegistryConfig
from .copy_planner import DOCKER_TRANSPORT, CopyRequest, plan_copy, tag_reference
from .manifest_index import (
    Resolved,
    build_index,
    entries_from_manifest_list,
    is_manifest_list,
    resolve_platform,
)
from .manifest_list_assembler import DestinationManifestList
from .platforms import PlatformSpec
from .utils.misc import log_step

LOG = logging.getLogger("imagebundle")


class ImageBundler:
    """
    Copy configured images to the staging registry.

    Registries, images, tags and platforms are processed sequentially in
    configuration order. The first failure aborts the whole run.
    """

    def __init__(
        self,
        config: ImagesConfig,
        platforms: Sequence[PlatformSpec],
        executor: Any,
        staging_address: str,
        debug: bool = False,
    ) -> None:
        """
        Initialize.

        Args:
            config (dict):
                Parsed images configuration.
            platforms ([PlatformSpec]):
                Platforms to copy.
            executor (Executor):
                Executor running skopeo commands.
            staging_address (str):
                host:port of the staging registry.
            debug (bool):
                Whether skopeo should produce debug output.
        """
        self.config = config
        self.platforms = list(platforms)
        self.executor = executor
        self.staging_address = staging_address
        self.debug = debug

    @log_step("Copy images")
    def copy_images(self) -> None:
        """Copy all images of all registries. Main entrypoint method."""
        for registry in self.config.values():
            self.copy_registry_images(registry)

    def _source_options(self, registry: RegistryConfig) -> Tuple[bool, Optional[Credentials]]:
        credentials = registry.credentials
        if credentials and credentials.username:
            return registry.verify_tls, credentials

        self.executor.attempt_registry_login(registry.name)
        return registry.verify_tls, None

    def copy_registry_images(self, registry: RegistryConfig) -> None:
        """
        Copy all requested tags of all images of one registry.

        Args:
            registry (RegistryConfig):
                Configuration of the source registry.
        """
        src_tls_verify, credentials = self._source_options(registry)
        for image_name, tags in registry.images.items():
            for tag in tags:
                self.copy_image_tag(registry.name, image_name, tag, src_tls_verify, credentials)

    def copy_image_tag(
        self,
        registry_name: str,
        image_name: str,
        tag: str,
        src_tls_verify: bool = True,
        credentials: Optional[Credentials] = None,
    ) -> Optional[DestinationManifestList]:
        """
        Copy requested platforms of one image tag and publish their manifest list.

        Args:
            registry_name (str):
                Source registry host.
            image_name (str):
                Image repository.
            tag (str):
                Image tag.
            src_tls_verify (bool):
                Whether to verify TLS of the source registry.
            credentials (Credentials):
                Optional source registry credentials.
        Returns (DestinationManifestList|None):
            Manifest list assembled for the tag, None if the source isn't a manifest list.
        """
        src_ref = tag_reference(registry_name, image_name, tag)
        LOG.info(
            "Copying {0} (platforms: {1})".format(
                src_ref, ", ".join(str(p) for p in self.platforms)
            )
        )

        manifest, output = self.executor.skopeo_inspect_manifest(
            DOCKER_TRANSPORT + src_ref,
            src_tls_verify=src_tls_verify,
            src_credentials=credentials,
            debug=self.debug,
        )
        if output:
            LOG.debug(output)

        if not is_manifest_list(manifest):
            self._copy_single_manifest(
                registry_name, image_name, tag, src_tls_verify, credentials
            )
            return None

        index = build_index(entries_from_manifest_list(manifest))
        dest_manifest_list = DestinationManifestList.from_source(manifest)

        for platform in self.platforms:
            resolution = resolve_platform(index, platform, src_ref)
            if isinstance(resolution, Resolved) and dest_manifest_list.contains(resolution.entry):
                LOG.info(
                    "Platform {0} of {1} resolves to already copied {2}, skipping".format(
                        platform, src_ref, resolution.entry.digest
                    )
                )
                continue
            request = plan_copy(
                registry_name,
                image_name,
                tag,
                resolution,
                self.staging_address,
                platform,
                src_tls_verify=src_tls_verify,
                src_credentials=credentials,
                debug=self.debug,
            )
            self._copy(request)
            if isinstance(resolution, Resolved):
                dest_manifest_list.append(resolution.entry, copy_succeeded=True)

        if dest_manifest_list.should_publish():
            dest_ref = DOCKER_TRANSPORT + tag_reference(self.staging_address, image_name, tag)
            output = dest_manifest_list.publish(
                self.executor, dest_ref, src_credentials=credentials, debug=self.debug
            )
            if output:
                LOG.debug(output)
            pm.hook.imagebundle_manifest_list_published(
                dest_ref=dest_ref, digests=dest_manifest_list.digests
            )

        return dest_manifest_list

    def _copy_single_manifest(
        self,
        registry_name: str,
        image_name: str,
        tag: str,
        src_tls_verify: bool,
        credentials: Optional[Credentials],
    ) -> None:
        # Single-platform source: nothing to resolve. Every requested platform is
        # copied by tag from the same reference.
        LOG.info(
            "{0} is not a manifest list, copying it by tag".format(
                tag_reference(registry_name, image_name, tag)
            )
        )
        for platform in self.platforms:
            request = CopyRequest(
                src=DOCKER_TRANSPORT + tag_reference(registry_name, image_name, tag),
                dst=DOCKER_TRANSPORT + tag_reference(self.staging_address, image_name, tag),
                platform=platform,
                src_tls_verify=src_tls_verify,
                src_credentials=credentials,
                debug=self.debug,
            )
            self._copy(request)

    def _copy(self, request: CopyRequest) -> None:
        LOG.info(
            "Copying {0} to {1} ({2})".format(request.src, request.dst, request.platform)
        )
        output = self.executor.skopeo_copy(
            request.src,
            request.dst,
            src_tls_verify=request.src_tls_verify,
            dest_tls_verify=request.dest_tls_verify,
            src_credentials=request.src_credentials,
            platform=request.platform,
            debug=request.debug,
        )
        if output:
            LOG.debug(output)
        pm.hook.imagebundle_image_copied(src_ref=request.src, dest_ref=request.dst)

