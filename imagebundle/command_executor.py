import json
import logging
import os
import re
import shlex
import subprocess
import tempfile
import textwrap
from shlex import quote
from types import TracebackType
from typing import Any, Dict, List, Optional, Tuple, Type

from typing_extensions import Self

from .config import Credentials
from .ecr import ECR_USERNAME, ecr_region, is_ecr_registry
from .exceptions import (
    CopyError,
    InspectError,
    ManifestPublishError,
    RegistryLoginError,
    SkopeoError,
)
from .platforms import PlatformSpec

LOG = logging.getLogger("imagebundle")

CREDS_RE = re.compile(r"(--(?:src-|dest-)?creds[ =]'?)([^:\s']+):[^\s']+")
DIR_TRANSPORT_VERSION = "Directory Transport Version: 1.1\n"


def mask_credentials(cmd: str) -> str:
    """Hide passwords passed on a skopeo command line."""
    return CREDS_RE.sub(r"\1\2:***", cmd)


class Executor(object):
    """
    Base executor class.

    Implementation of command execution should be done in
    descendant classes. Skopeo operations are implemented in this class.
    """

    def __enter__(self) -> Self:
        """Use the class as context manager. Returns instance upon invocation."""
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Cleanup when used as context manager. No-op by default."""
        pass

    def _run_cmd(
        self,
        cmd: str,
        err_msg: Optional[str] = None,
        tolerate_err: bool = False,
        stdin: Optional[str] = None,
        error_cls: Type[SkopeoError] = SkopeoError,
    ) -> Tuple[str, str]:
        """Run a bash command."""
        raise NotImplementedError  # pragma: no cover"

    @staticmethod
    def _global_options(
        debug: bool = False, platform: Optional[PlatformSpec] = None
    ) -> List[str]:
        options = []
        if debug:
            options.append("--debug")
        if platform:
            options.append("--override-os {0}".format(quote(platform.os)))
            options.append("--override-arch {0}".format(quote(platform.arch)))
            if platform.variant:
                options.append("--override-variant {0}".format(quote(platform.variant)))
        return options

    def skopeo_login(
        self, host: str, username: Optional[str] = None, password: Optional[str] = None
    ) -> None:
        """
        Attempt to login to a registry if no login credentials are present.

        Args:
            host (str):
                Registry host.
            username (str):
                Username for login.
            password (str):
                Password for login.
        """
        cmd_check = "skopeo login --get-login {0}".format(quote(host))
        out, err = self._run_cmd(cmd_check, tolerate_err=True)
        if username and username in out:
            LOG.info("Already logged in to {0}".format(host))
            return

        if not username or not password:
            raise RegistryLoginError(
                "Login credentials for {0} are not present. "
                "User and password must be provided.".format(host)
            )
        LOG.info("Logging in to {0} with provided credentials".format(host))

        cmd_login = "skopeo login -u {0} --password-stdin {1}".format(
            quote(username), quote(host)
        )
        out, err = self._run_cmd(
            cmd_login,
            err_msg="Failed to log in to {0}".format(host),
            stdin=password,
            error_cls=RegistryLoginError,
        )

        if "Login Succeeded" in out:
            LOG.info("Login successful")
        else:
            raise RegistryLoginError(
                "Login command didn't generate expected output. "
                "STDOUT: '{0}', STDERR: '{1}'".format(out, err),
                output=err,
            )

    def attempt_registry_login(self, registry: str) -> None:
        """
        Log in to a registry which has no credentials in the images file.

        Only AWS ECR registries are handled, using a token of the 'aws' CLI. Other
        registries are expected to be accessible anonymously or via existing auth files.

        Args:
            registry (str):
                Registry host.
        """
        if not is_ecr_registry(registry):
            LOG.debug("No login attempted for registry {0}".format(registry))
            return

        LOG.info("Getting ECR login token for {0}".format(registry))
        cmd = "aws ecr get-login-password --region {0}".format(quote(ecr_region(registry) or ""))
        password, _ = self._run_cmd(
            cmd,
            err_msg="Failed to get ECR login token for {0}".format(registry),
            error_cls=RegistryLoginError,
        )
        self.skopeo_login(registry, ECR_USERNAME, password.strip())

    def skopeo_inspect_manifest(
        self,
        image_ref: str,
        src_tls_verify: bool = True,
        src_credentials: Optional[Credentials] = None,
        debug: bool = False,
    ) -> Tuple[Dict[str, Any], str]:
        """
        Get the raw manifest (or manifest list) of an image.

        Args:
            image_ref (str):
                Image reference including the transport, e.g. 'docker://quay.io/repo:tag'.
            src_tls_verify (bool):
                Whether to verify TLS of the registry.
            src_credentials (Credentials):
                Optional registry credentials.
            debug (bool):
                Whether to produce skopeo debug output.
        Returns (dict, str):
            Parsed manifest and the diagnostic output of skopeo.
        Raises:
            InspectError:
                If skopeo fails or returns something that isn't JSON.
        """
        options = self._global_options(debug)
        options.append("inspect --raw")
        if not src_tls_verify:
            options.append("--tls-verify=false")
        if src_credentials:
            options.append(
                "--creds {0}".format(
                    quote("{0}:{1}".format(src_credentials.username, src_credentials.password))
                )
            )
        cmd = "skopeo {0} {1}".format(" ".join(options), quote(image_ref))
        out, err = self._run_cmd(
            cmd,
            err_msg="Failed to inspect {0}".format(image_ref),
            error_cls=InspectError,
        )

        try:
            manifest = json.loads(out)
        except ValueError as e:
            raise InspectError(
                "Manifest of {0} is not valid JSON".format(image_ref), output=out + err
            ) from e
        if not isinstance(manifest, dict):
            raise InspectError("Unexpected manifest of {0}".format(image_ref), output=out + err)

        return manifest, err

    def skopeo_copy(
        self,
        src: str,
        dst: str,
        src_tls_verify: bool = True,
        dest_tls_verify: bool = True,
        src_credentials: Optional[Credentials] = None,
        platform: Optional[PlatformSpec] = None,
        multi_arch: Optional[str] = None,
        debug: bool = False,
        error_cls: Type[SkopeoError] = CopyError,
    ) -> str:
        """
        Copy an image with skopeo.

        Args:
            src (str):
                Source reference including the transport.
            dst (str):
                Destination reference including the transport.
            src_tls_verify (bool):
                Whether to verify TLS of the source registry.
            dest_tls_verify (bool):
                Whether to verify TLS of the destination registry.
            src_credentials (Credentials):
                Optional credentials of the source registry.
            platform (PlatformSpec):
                Platform to select if the source is a manifest list.
            multi_arch (str):
                How to handle manifest lists, e.g. 'index-only'. Skopeo's default if omitted.
            debug (bool):
                Whether to produce skopeo debug output.
            error_cls (type):
                Exception raised on failure.
        Returns (str):
            Output of skopeo.
        """
        options = self._global_options(debug, platform)
        options.append("copy")
        if multi_arch:
            options.append("--multi-arch={0}".format(quote(multi_arch)))
        if not src_tls_verify:
            options.append("--src-tls-verify=false")
        if not dest_tls_verify:
            options.append("--dest-tls-verify=false")
        if src_credentials:
            options.append(
                "--src-creds {0}".format(
                    quote("{0}:{1}".format(src_credentials.username, src_credentials.password))
                )
            )
        cmd = "skopeo {0} {1} {2}".format(" ".join(options), quote(src), quote(dst))

        LOG.debug("Copying '{0}' to '{1}'".format(src, dst))
        out, err = self._run_cmd(
            cmd,
            err_msg="Failed to copy {0} to {1}".format(src, dst),
            error_cls=error_cls,
        )
        return out + err

    def skopeo_copy_manifest(
        self,
        manifest_list: Dict[str, Any],
        dest_ref: str,
        dest_tls_verify: bool = True,
        src_credentials: Optional[Credentials] = None,
        debug: bool = False,
    ) -> str:
        """
        Upload a manifest list document to a destination tag.

        The manifest list is stored in a temporary directory using skopeo's 'dir:'
        transport layout and only the index is copied from there. The manifests it
        references must already be present at the destination.

        Args:
            manifest_list (dict):
                Manifest list to upload.
            dest_ref (str):
                Destination reference including the transport.
            dest_tls_verify (bool):
                Whether to verify TLS of the destination registry.
            src_credentials (Credentials):
                Passed to skopeo unchanged.
            debug (bool):
                Whether to produce skopeo debug output.
        Returns (str):
            Output of skopeo.
        """
        with tempfile.TemporaryDirectory(prefix=".manifest-list-") as tmp_dir:
            with open(os.path.join(tmp_dir, "manifest.json"), "w") as f:
                json.dump(manifest_list, f, indent=2)
            with open(os.path.join(tmp_dir, "version"), "w") as f:
                f.write(DIR_TRANSPORT_VERSION)

            return self.skopeo_copy(
                "dir:{0}".format(tmp_dir),
                dest_ref,
                dest_tls_verify=dest_tls_verify,
                src_credentials=src_credentials,
                multi_arch="index-only",
                debug=debug,
                error_cls=ManifestPublishError,
            )


class LocalExecutor(Executor):
    """Run commands locally."""

    def __init__(self, params: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize.

        Args:
            params (dict):
                Custom parameters to be applied when running the shell commands.
        """
        self.params = dict(params or {})
        self.params.setdefault("universal_newlines", True)
        self.params.setdefault("stderr", subprocess.PIPE)
        self.params.setdefault("stdout", subprocess.PIPE)
        self.params.setdefault("stdin", subprocess.PIPE)

    def _run_cmd(
        self,
        cmd: str,
        err_msg: Optional[str] = None,
        tolerate_err: bool = False,
        stdin: Optional[str] = None,
        error_cls: Type[SkopeoError] = SkopeoError,
    ) -> Tuple[str, str]:
        """
        Run a command locally.

        Args:
            cmd (str):
                Shell command to be executed.
            err_msg (str):
                Error message written when the command fails.
            tolerate_err (bool):
                Whether to tolerate a failed command.
            stdin (str):
                String to send to standard input for a command.
            error_cls (type):
                Exception raised when the command fails. It receives the command output.

        Returns (str, str):
            Tuple of stdout and stderr generated by the command.
        """
        err_msg = err_msg or "An error has occured when executing a command."

        try:
            p = subprocess.Popen(shlex.split(cmd), **self.params)
        except OSError as e:
            raise error_cls("{0}: {1}".format(err_msg, e)) from e
        out, err = p.communicate(input=stdin)

        if p.returncode != 0 and not tolerate_err:
            LOG.error("Command {0} failed with the following error:".format(mask_credentials(cmd)))
            for line in textwrap.wrap(err, 200):
                LOG.error(f"    {line}")
            raise error_cls(err_msg, output=out + err)

        return out, err
