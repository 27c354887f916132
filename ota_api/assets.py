"""Asset descriptors and asset reads for update bundles."""

import base64
import hashlib
import mimetypes
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlencode

from ota_api.errors import AssetNotFoundError, MetadataNotFoundError
from ota_api.models import AssetDescriptor, BundleMetadata

LAUNCH_ASSET_CONTENT_TYPE = "application/javascript"
LAUNCH_ASSET_EXTENSION = "bundle"

# Built-in table only, never the host's mime.types files.
_MIME_TYPES = mimetypes.MimeTypes(filenames=())
for _ext, _type in (
    (".ttf", "font/ttf"),
    (".otf", "font/otf"),
    (".woff", "font/woff"),
    (".woff2", "font/woff2"),
    (".webp", "image/webp"),
):
    _MIME_TYPES.add_type(_type, _ext)


def resolve_content_type(ext: Optional[str], is_launch_asset: bool) -> str:
    """Content type served for an asset.

    Launch assets are always JavaScript (Hermes bytecode included). Other
    assets are looked up by extension; unknown extensions yield "".
    """
    if is_launch_asset:
        return LAUNCH_ASSET_CONTENT_TYPE
    if not ext:
        return ""
    content_type, _ = _MIME_TYPES.guess_type(f"asset.{ext.lstrip('.')}", strict=False)
    return content_type or ""


def resolve_asset_path(bundle_path: Path, file_path: str) -> Path:
    """Resolve a bundle-relative path, refusing anything outside the bundle.

    Raises:
        AssetNotFoundError: If the path escapes the bundle or is not a file
    """
    root = Path(bundle_path).resolve()
    candidate = (root / file_path).resolve()
    if candidate != root and root not in candidate.parents:
        raise AssetNotFoundError(f'Asset "{file_path}" does not exist.')
    if not candidate.is_file():
        raise AssetNotFoundError(f'Asset "{file_path}" does not exist.')
    return candidate


def hash_asset(data: bytes) -> Tuple[str, str]:
    """Return (hash, key) for asset bytes.

    hash is the base64url SHA-256 without padding; key is the hex SHA-256.
    """
    digest = hashlib.sha256(data).digest()
    asset_hash = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return asset_hash, digest.hex()


def build_asset_url(base_url: str, file_path: str, runtime_version: str, platform: str) -> str:
    query = urlencode({
        "asset": file_path,
        "runtimeVersion": runtime_version,
        "platform": platform,
    })
    return f"{base_url.rstrip('/')}/assets?{query}"


def describe_asset(
    bundle_path: Path,
    file_path: str,
    ext: Optional[str],
    runtime_version: str,
    platform: str,
    is_launch_asset: bool,
    base_url: str,
) -> AssetDescriptor:
    """Build the manifest descriptor of one bundle file.

    Args:
        bundle_path: Bundle directory
        file_path: Path of the asset relative to bundle_path
        ext: Extension from metadata.json (ignored for the launch asset)
        runtime_version: Runtime version encoded into the asset URL
        platform: Platform encoded into the asset URL
        is_launch_asset: Whether this is the JS bundle
        base_url: Base URL of the API (the asset route is appended)

    Raises:
        AssetNotFoundError: If the file does not exist in the bundle
    """
    data = resolve_asset_path(bundle_path, file_path).read_bytes()
    asset_hash, key = hash_asset(data)
    extension = LAUNCH_ASSET_EXTENSION if is_launch_asset else (ext or "").lstrip(".")

    return AssetDescriptor(
        hash=asset_hash,
        key=key,
        file_extension=f".{extension}",
        content_type=resolve_content_type(ext, is_launch_asset),
        url=build_asset_url(base_url, file_path, runtime_version, platform),
    )


def read_asset(
    bundle_path: Path,
    metadata: BundleMetadata,
    platform: str,
    asset_path: str,
) -> Tuple[bytes, str]:
    """Read an asset listed in the bundle metadata for a platform.

    Returns:
        Tuple of (file bytes, content type)

    Raises:
        MetadataNotFoundError: If the metadata has no entry for the platform
        AssetNotFoundError: If the asset is not part of the update or missing
    """
    platform_metadata = metadata.file_metadata.for_platform(platform)
    if platform_metadata is None:
        raise MetadataNotFoundError(f"No {platform} update in bundle {Path(bundle_path).name}")

    is_launch_asset = platform_metadata.bundle == asset_path
    entry = next((a for a in platform_metadata.assets if a.path == asset_path), None)
    if not is_launch_asset and entry is None:
        raise AssetNotFoundError(f'Asset "{asset_path}" does not exist.')

    data = resolve_asset_path(bundle_path, asset_path).read_bytes()
    content_type = resolve_content_type(entry.ext if entry else None, is_launch_asset)
    return data, content_type
