from copy import deepcopy

import pytest

from pubtools.pluggy import pm

from imagebundle.config import RegistryConfig

# flake8: noqa: E501

NGINX_MANIFEST_LIST = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.docker.distribution.manifest.list.v2+json",
    "manifests": [
        {
            "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
            "size": 1570,
            "digest": "sha256:aaa",
            "platform": {"architecture": "amd64", "os": "linux"},
        },
        {
            "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
            "size": 1570,
            "digest": "sha256:bbb",
            "platform": {"architecture": "arm64", "os": "linux", "variant": "v8"},
        },
    ],
}

SINGLE_MANIFEST = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
    "config": {
        "mediaType": "application/vnd.docker.container.image.v1+json",
        "size": 7023,
        "digest": "sha256:ccc",
    },
    "layers": [],
}


@pytest.fixture
def hookspy():
    # Yields a list which receives a (name, kwargs) tuple
    # every time a pubtools hook is invoked.
    hooks = []

    def record_hook(hook_name, _hook_impls, kwargs):
        hooks.append((hook_name, kwargs))

    def do_nothing(*args, **kwargs):
        pass

    undo = pm.add_hookcall_monitoring(before=record_hook, after=do_nothing)
    yield hooks
    undo()


@pytest.fixture
def nginx_manifest_list():
    return deepcopy(NGINX_MANIFEST_LIST)


@pytest.fixture
def single_manifest():
    return deepcopy(SINGLE_MANIFEST)


@pytest.fixture
def nginx_config():
    return {
        "docker.io": RegistryConfig(name="docker.io", images={"library/nginx": ["1.25"]}),
    }


@pytest.fixture
def images_file(tmp_path):
    path = tmp_path / "images.yaml"
    path.write_text(
        "docker.io:\n"
        "  images:\n"
        "    library/nginx:\n"
        "      - '1.25'\n"
        "registry.example.com:\n"
        "  tlsVerify: false\n"
        "  credentials:\n"
        "    username: user\n"
        "    password: secret\n"
        "  images:\n"
        "    team/app:\n"
        "      - v1.0.0\n"
        "      - latest\n"
    )
    return str(path)
