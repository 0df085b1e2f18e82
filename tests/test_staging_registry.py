import docker
import mock
import pytest
import requests_mock

from imagebundle import staging_registry
from imagebundle.exceptions import RegistryStartupError


@pytest.mark.parametrize(
    "image,expected",
    [
        ("docker.io/library/registry:2", ("docker.io/library/registry", "2")),
        ("localhost:5000/registry:2.8", ("localhost:5000/registry", "2.8")),
        ("localhost:5000/registry", ("localhost:5000/registry", "latest")),
        ("registry", ("registry", "latest")),
    ],
)
def test_split_image_tag(image, expected):
    assert staging_registry.split_image_tag(image) == expected


def test_find_free_port():
    assert 0 < staging_registry.find_free_port("127.0.0.1") < 65536


def test_address(tmp_path):
    registry = staging_registry.StagingRegistry(str(tmp_path), port=5000)

    assert registry.address == "127.0.0.1:5000"


@mock.patch("imagebundle.staging_registry.docker.APIClient")
def test_listen_and_serve(mock_api_client, tmp_path):
    client = mock_api_client.return_value
    client.create_container.return_value = {"Id": "123"}

    with requests_mock.Mocker() as m:
        m.get("http://127.0.0.1:5000/v2/", json={})
        with staging_registry.StagingRegistry(
            str(tmp_path), port=5000, base_url="tcp://docker:2375", timeout=30
        ) as registry:
            registry.listen_and_serve()
            assert registry.container == {"Id": "123"}

    mock_api_client.assert_called_once_with(
        base_url="tcp://docker:2375", version="auto", timeout=30
    )
    client.pull.assert_called_once_with("docker.io/library/registry", tag="2")
    client.create_host_config.assert_called_once_with(
        binds={str(tmp_path): {"bind": "/var/lib/registry", "mode": "rw"}},
        port_bindings={5000: ("127.0.0.1", 5000)},
    )
    client.create_container.assert_called_once_with(
        "docker.io/library/registry:2",
        detach=True,
        ports=[5000],
        host_config=client.create_host_config.return_value,
        user=mock.ANY,
    )
    client.start.assert_called_once_with("123")
    client.remove_container.assert_called_once_with("123", force=True)
    assert registry.container is None


@mock.patch("imagebundle.staging_registry.docker.APIClient")
def test_listen_and_serve_docker_error(mock_api_client, tmp_path):
    mock_api_client.return_value.pull.side_effect = docker.errors.APIError("pull denied")

    with staging_registry.StagingRegistry(str(tmp_path), port=5000) as registry:
        with pytest.raises(RegistryStartupError, match="pull denied"):
            registry.listen_and_serve()

    mock_api_client.return_value.remove_container.assert_not_called()


@mock.patch("imagebundle.staging_registry.docker.APIClient")
def test_listen_and_serve_not_ready(mock_api_client, tmp_path):
    client = mock_api_client.return_value
    client.create_container.return_value = {"Id": "123"}

    with requests_mock.Mocker() as m:
        m.get("http://127.0.0.1:5000/v2/", status_code=404)
        with staging_registry.StagingRegistry(str(tmp_path), port=5000) as registry:
            with pytest.raises(RegistryStartupError, match="is not ready"):
                registry.listen_and_serve(retries=1)

    client.remove_container.assert_called_once_with("123", force=True)


def test_stop_without_container(tmp_path):
    registry = staging_registry.StagingRegistry(str(tmp_path), port=5000)

    registry.stop()

    assert registry._client is None


@mock.patch("imagebundle.staging_registry.docker.APIClient")
def test_exit_keeps_original_error(mock_api_client, tmp_path, caplog):
    client = mock_api_client.return_value
    client.create_container.return_value = {"Id": "123"}
    client.remove_container.side_effect = docker.errors.APIError("daemon gone")

    with requests_mock.Mocker() as m:
        m.get("http://127.0.0.1:5000/v2/", json={})
        with pytest.raises(ValueError, match="copy failed"):
            with staging_registry.StagingRegistry(str(tmp_path), port=5000) as registry:
                registry.listen_and_serve()
                raise ValueError("copy failed")

    assert "Failed to remove staging registry container" in caplog.text


@mock.patch("imagebundle.staging_registry.docker.APIClient")
def test_exit_remove_error(mock_api_client, tmp_path):
    client = mock_api_client.return_value
    client.create_container.return_value = {"Id": "123"}
    client.remove_container.side_effect = docker.errors.APIError("daemon gone")

    with requests_mock.Mocker() as m:
        m.get("http://127.0.0.1:5000/v2/", json={})
        with pytest.raises(docker.errors.APIError):
            with staging_registry.StagingRegistry(str(tmp_path), port=5000) as registry:
                registry.listen_and_serve()
