import pytest

from imagebundle.exceptions import InvalidPlatformFormat
from imagebundle.platforms import DEFAULT_PLATFORM, PlatformSpec


@pytest.mark.parametrize(
    "value,expected",
    [
        ("linux/amd64", PlatformSpec("linux", "amd64")),
        ("linux/arm64/v8", PlatformSpec("linux", "arm64", "v8")),
        ("windows/amd64", PlatformSpec("windows", "amd64")),
    ],
)
def test_parse(value, expected):
    platform = PlatformSpec.parse(value)

    assert platform == expected
    assert str(platform) == value
    assert platform.canonical == value


@pytest.mark.parametrize(
    "value",
    [
        "",
        "linux",
        "linux/",
        "/amd64",
        "linux/amd64/",
        "linux/arm/v7/extra",
        "linux /amd64",
        "linux/amd64\n",
        None,
    ],
)
def test_parse_invalid(value):
    with pytest.raises(InvalidPlatformFormat, match="required format"):
        PlatformSpec.parse(value)


def test_invalid_format_is_value_error():
    with pytest.raises(ValueError):
        PlatformSpec.parse("amd64")


def test_equality_and_hash():
    assert PlatformSpec.parse("linux/arm64") != PlatformSpec.parse("linux/arm64/v8")
    assert len({PlatformSpec.parse("linux/amd64"), PlatformSpec("linux", "amd64", "")}) == 1


def test_from_descriptor():
    platform = PlatformSpec.from_descriptor(
        {"architecture": "arm", "os": "linux", "variant": "v7", "os.features": []}
    )
    assert platform == PlatformSpec("linux", "arm", "v7")
    assert PlatformSpec.from_descriptor({"architecture": "amd64", "os": "linux"}).variant == ""


def test_arm64_fallback():
    fallback = PlatformSpec.parse("linux/arm64").arm64_fallback()
    assert fallback == PlatformSpec("linux", "arm64", "v8")
    assert PlatformSpec.parse("linux/arm64/v8").arm64_fallback() is None
    assert PlatformSpec.parse("linux/arm/v7").arm64_fallback() is None
    assert PlatformSpec.parse("linux/amd64").arm64_fallback() is None


def test_default_platform():
    assert str(DEFAULT_PLATFORM) == "linux/amd64"
