"""Shared fixtures: bundle trees on disk, RSA keys, and an API test client."""

import io
import json
import re
import zipfile
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from ota_api.config import Settings, get_settings

UPLOAD_KEY = "test-upload-key"
PUBLIC_URL = "https://updates.example.com"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
IOS_BUNDLE = b"var ios=1;"
ANDROID_BUNDLE = b"var android=1;"


def default_files():
    return {
        "_expo/static/js/ios/index-ios.hbc": IOS_BUNDLE,
        "_expo/static/js/android/index-android.hbc": ANDROID_BUNDLE,
        "assets/4f1cb2cac2370cd5050681232e8575a8": PNG_BYTES,
    }


def default_metadata():
    return {
        "version": 0,
        "bundler": "metro",
        "fileMetadata": {
            "ios": {
                "bundle": "_expo/static/js/ios/index-ios.hbc",
                "assets": [{"path": "assets/4f1cb2cac2370cd5050681232e8575a8", "ext": "png"}],
            },
            "android": {
                "bundle": "_expo/static/js/android/index-android.hbc",
                "assets": [{"path": "assets/4f1cb2cac2370cd5050681232e8575a8", "ext": "png"}],
            },
        },
    }


def build_zip(files):
    """Zip a {relative path: bytes} mapping in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def updates_root(tmp_path):
    root = tmp_path / "updates"
    root.mkdir()
    return root


@pytest.fixture
def make_bundle(updates_root):
    """Factory writing a bundle directory with metadata.json and its files."""

    def _make(
        channel="production",
        runtime_version="1.0.0",
        timestamp=1700000000,
        files=None,
        metadata=None,
        expo_config=None,
    ) -> Path:
        bundle = updates_root / channel / runtime_version / str(timestamp)
        bundle.mkdir(parents=True)
        for rel, data in (default_files() if files is None else files).items():
            path = bundle / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        if metadata is not False:
            content = default_metadata() if metadata is None else metadata
            raw = content if isinstance(content, (str, bytes)) else json.dumps(content)
            target = bundle / "metadata.json"
            target.write_bytes(raw if isinstance(raw, bytes) else raw.encode("utf-8"))
        if expo_config is not None:
            (bundle / "expoConfig.json").write_text(json.dumps(expo_config))
        return bundle

    return _make


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_private_key):
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def private_key_path(tmp_path, rsa_private_pem):
    path = tmp_path / "keys" / "private-key.pem"
    path.parent.mkdir()
    path.write_text(rsa_private_pem)
    return path


@pytest.fixture
def settings(updates_root):
    return Settings(
        upload_key=UPLOAD_KEY,
        updates_root=updates_root,
        private_key_path=None,
        public_url=PUBLIC_URL,
    )


@pytest.fixture
def client(settings):
    """Test client with settings pointed at the temporary updates root."""
    from ota_api.main import app

    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _parse_multipart(response):
    """Split a multipart/mixed response into {name: (headers, body bytes)}."""
    boundary = response.headers["content-type"].split("boundary=", 1)[1]
    content = response.content if hasattr(response, "content") else response.body
    chunks = content.split(f"--{boundary}".encode("ascii"))
    assert chunks[0] == b""
    assert chunks[-1] == b"--\r\n"

    parts = {}
    for chunk in chunks[1:-1]:
        assert chunk.startswith(b"\r\n") and chunk.endswith(b"\r\n")
        head, body = chunk[2:-2].split(b"\r\n\r\n", 1)
        headers = {}
        for line in head.decode("latin-1").split("\r\n"):
            key, value = line.split(": ", 1)
            headers[key.lower()] = value
        name = re.search(r'name="([^"]+)"', headers["content-disposition"]).group(1)
        parts[name] = (headers, body)
    return parts


@pytest.fixture
def parse_multipart():
    return _parse_multipart


@pytest.fixture
def zip_files():
    return build_zip


@pytest.fixture
def bundle_files():
    return default_files()


@pytest.fixture
def bundle_metadata():
    return default_metadata()
