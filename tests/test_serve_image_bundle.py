import logging
import os

import mock
import pytest

from imagebundle import serve_image_bundle
from imagebundle.archive import archive_directory
from imagebundle.exceptions import RegistryStartupError


@pytest.fixture
def image_bundle(tmp_path):
    root = tmp_path / "staging"
    blobs = root / "docker" / "registry" / "v2" / "blobs"
    blobs.mkdir(parents=True)
    (blobs / "data").write_text("blob")
    (root / "images.yaml").write_text(
        "docker.io:\n  images:\n    library/nginx:\n      - '1.25'\n"
    )
    bundle = str(tmp_path / "images.tar")
    archive_directory(str(root), bundle)
    return bundle


@pytest.fixture
def mock_registry():
    with mock.patch("imagebundle.serve_image_bundle.StagingRegistry") as mocked:
        mocked.return_value.__enter__.return_value = mocked.return_value
        mocked.return_value.address = "0.0.0.0:5000"
        yield mocked


@pytest.fixture
def mock_wait():
    with mock.patch("imagebundle.serve_image_bundle.wait_for_interrupt") as mocked:
        yield mocked


def test_serve_image_bundle_main(mock_registry, mock_wait, image_bundle, monkeypatch, caplog):
    caplog.set_level(logging.INFO)
    monkeypatch.delenv("DOCKER_HOST", raising=False)
    extracted = {}

    def check_storage(storage_dir, **kwargs):
        extracted["storage_dir"] = storage_dir
        extracted["files"] = sorted(os.listdir(storage_dir))
        return mock.DEFAULT

    mock_registry.side_effect = check_storage

    serve_image_bundle.serve_image_bundle_main(
        [
            "dummy",
            "--image-bundle",
            image_bundle,
            "--listen-address",
            "0.0.0.0",
            "--listen-port",
            "5000",
        ]
    )

    mock_registry.assert_called_once_with(
        extracted["storage_dir"],
        image="docker.io/library/registry:2",
        base_url="unix://var/run/docker.sock",
        host="0.0.0.0",
        port=5000,
    )
    assert extracted["files"] == ["docker", "images.yaml"]
    mock_registry.return_value.listen_and_serve.assert_called_once_with()
    mock_wait.assert_called_once_with()
    mock_registry.return_value.__exit__.assert_called_once()
    assert not os.path.exists(extracted["storage_dir"])
    assert "docker.io/library/nginx: 1.25" in caplog.text


def test_serve_image_bundle_default_port(mock_registry, mock_wait, image_bundle):
    serve_image_bundle.serve_image_bundle(image_bundle)

    assert mock_registry.call_args[1]["host"] == "127.0.0.1"
    assert mock_registry.call_args[1]["port"] is None


def test_serve_image_bundle_docker_host_env(mock_registry, mock_wait, image_bundle, monkeypatch):
    monkeypatch.setenv("DOCKER_HOST", "tcp://remote:2375")

    serve_image_bundle.serve_image_bundle_main(["dummy", "--image-bundle", image_bundle])

    assert mock_registry.call_args[1]["base_url"] == "tcp://remote:2375"


def test_serve_image_bundle_registry_failure(mock_registry, mock_wait, image_bundle, caplog):
    mock_registry.return_value.listen_and_serve.side_effect = RegistryStartupError("port in use")

    with pytest.raises(SystemExit) as exc_info:
        serve_image_bundle.serve_image_bundle_main(["dummy", "--image-bundle", image_bundle])

    assert exc_info.value.code == 2
    assert "Error serving image bundle: port in use" in caplog.text
    mock_wait.assert_not_called()
    storage_dir = mock_registry.call_args[0][0]
    assert not os.path.exists(storage_dir)


def test_serve_image_bundle_missing(mock_registry, mock_wait, tmp_path, caplog):
    with pytest.raises(SystemExit) as exc_info:
        serve_image_bundle.serve_image_bundle_main(
            ["dummy", "--image-bundle", str(tmp_path / "missing.tar")]
        )

    assert exc_info.value.code == 1
    assert "doesn't exist" in caplog.text
    mock_registry.assert_not_called()


def test_serve_image_bundle_without_images_file(mock_registry, mock_wait, tmp_path):
    root = tmp_path / "staging"
    root.mkdir()
    (root / "data").write_text("blob")
    bundle = str(tmp_path / "images.tar")
    archive_directory(str(root), bundle)

    with pytest.raises(SystemExit) as exc_info:
        serve_image_bundle.serve_image_bundle_main(["dummy", "--image-bundle", bundle])

    assert exc_info.value.code == 1
    mock_registry.assert_not_called()


@mock.patch("imagebundle.serve_image_bundle.time.sleep")
def test_wait_for_interrupt(mock_sleep):
    mock_sleep.side_effect = [None, KeyboardInterrupt]

    serve_image_bundle.wait_for_interrupt()

    assert mock_sleep.call_count == 2
