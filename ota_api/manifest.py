"""expo-updates manifest assembly (protocol versions 0 and 1).

Per request:
1. Validate channel, platform, runtime version and protocol version
2. Resolve the latest bundle and load its metadata
3. Protocol 1 only: if the client already runs this update, answer with a
   noUpdateAvailable directive instead of the manifest
4. Describe every asset plus the launch asset
5. Optionally sign, then render as multipart/mixed

Nothing is cached; every response is recomputed from the bundle store.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ota_api.assets import describe_asset
from ota_api.bundle_store import BundleStore
from ota_api.errors import InternalError, MetadataNotFoundError, ProtocolError, ValidationError
from ota_api.metadata import LoadedMetadata, load_expo_config, load_metadata
from ota_api.models import PLATFORMS, Manifest, NoUpdateAvailableDirective
from ota_api.multipart import MultipartWriter
from ota_api.signing import create_signature_header, require_private_key

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = (0, 1)


@dataclass
class ManifestRequest:
    """Validated manifest request parameters."""

    channel: str
    platform: str
    runtime_version: str
    protocol_version: int = 0
    current_update_id: Optional[str] = None
    expect_signature: bool = False


@dataclass
class UpdateResponse:
    """Rendered multipart response."""

    body: bytes
    content_type: str
    protocol_version: int

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "expo-protocol-version": str(self.protocol_version),
            "expo-sfv-version": "0",
            "cache-control": "private, max-age=0",
            "content-type": self.content_type,
        }


def to_json(payload: Dict[str, Any]) -> str:
    """Compact JSON; the signed string and the sent body are this exact text."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def parse_protocol_version(values: list) -> int:
    """Parse the expo-protocol-version header values (default 0).

    Raises:
        ProtocolError: On repeated values or an unsupported version
    """
    if not values:
        return 0
    if len(values) > 1 or "," in values[0]:
        raise ProtocolError("Unsupported protocol version. Expected either 0 or 1.")
    try:
        version = int(values[0].strip())
    except ValueError as e:
        raise ProtocolError("Unsupported protocol version. Expected either 0 or 1.", cause=e) from e
    if version not in SUPPORTED_PROTOCOL_VERSIONS:
        raise ProtocolError("Unsupported protocol version. Expected either 0 or 1.")
    return version


def parse_manifest_request(headers, query: Mapping[str, str]) -> ManifestRequest:
    """Validate a manifest request.

    Args:
        headers: Request headers (must support get and getlist)
        query: Query parameters

    Raises:
        ValidationError: Missing channel or runtime version, bad platform
        ProtocolError: Bad expo-protocol-version header
    """
    channel = headers.get("expo-channel-name")
    if not channel:
        raise ValidationError("No channel provided.")

    protocol_version = parse_protocol_version(headers.getlist("expo-protocol-version"))

    platform = headers.get("expo-platform") or query.get("platform")
    if platform not in PLATFORMS:
        raise ValidationError("Unsupported platform. Expected either ios or android.")

    runtime_version = headers.get("expo-runtime-version") or query.get("runtime-version")
    if not runtime_version:
        raise ValidationError("No runtimeVersion provided.")

    return ManifestRequest(
        channel=channel,
        platform=platform,
        runtime_version=runtime_version,
        protocol_version=protocol_version,
        current_update_id=headers.get("expo-current-update-id"),
        expect_signature=bool(headers.get("expo-expect-signature")),
    )


def build_manifest(
    bundle_path: Path,
    loaded: LoadedMetadata,
    request: ManifestRequest,
    base_url: str,
) -> Manifest:
    """Describe the bundle's launch asset and assets for request.platform.

    Raises:
        MetadataNotFoundError: If the bundle has no update for the platform
        AssetNotFoundError: If a listed file is missing from the bundle
    """
    platform_metadata = loaded.metadata.file_metadata.for_platform(request.platform)
    if platform_metadata is None:
        raise MetadataNotFoundError(
            f"No {request.platform} update for runtime version {request.runtime_version}"
        )

    assets = [
        describe_asset(
            bundle_path=bundle_path,
            file_path=asset.path,
            ext=asset.ext,
            runtime_version=request.runtime_version,
            platform=request.platform,
            is_launch_asset=False,
            base_url=base_url,
        )
        for asset in platform_metadata.assets
    ]
    launch_asset = describe_asset(
        bundle_path=bundle_path,
        file_path=platform_metadata.bundle,
        ext=None,
        runtime_version=request.runtime_version,
        platform=request.platform,
        is_launch_asset=True,
        base_url=base_url,
    )

    expo_config = load_expo_config(bundle_path)
    return Manifest(
        id=loaded.update_uuid,
        created_at=loaded.created_at,
        runtime_version=request.runtime_version,
        launch_asset=launch_asset,
        assets=assets,
        metadata={},
        extra={"expoClient": expo_config} if expo_config is not None else None,
    )


def create_no_update_available_directive(protocol_version: int) -> NoUpdateAvailableDirective:
    """Directive telling the client it is up to date.

    Raises:
        InternalError: Under protocol 0, which has no directives
    """
    if protocol_version == 0:
        raise InternalError("NoUpdateAvailable directive not available in protocol version 0")
    return NoUpdateAvailableDirective()


def _signature_headers(body: str, request: ManifestRequest, private_key_path: Optional[Path]) -> Dict[str, str]:
    if not request.expect_signature:
        return {}
    private_key = require_private_key(private_key_path)
    return {"expo-signature": create_signature_header(body, private_key)}


def render_manifest(
    manifest: Manifest,
    request: ManifestRequest,
    private_key_path: Optional[Path] = None,
    boundary: Optional[str] = None,
) -> UpdateResponse:
    """Render the manifest and extensions parts."""
    manifest_json = to_json(manifest.to_wire())
    signature = _signature_headers(manifest_json, request, private_key_path)

    asset_request_headers = {
        asset.key: {"expo-channel-name": request.channel}
        for asset in [*manifest.assets, manifest.launch_asset]
    }

    writer = MultipartWriter(boundary)
    writer.append("manifest", manifest_json, headers=signature)
    writer.append("extensions", to_json({"assetRequestHeaders": asset_request_headers}))
    return UpdateResponse(writer.to_bytes(), writer.content_type, request.protocol_version)


def render_directive(
    directive: NoUpdateAvailableDirective,
    request: ManifestRequest,
    private_key_path: Optional[Path] = None,
    boundary: Optional[str] = None,
) -> UpdateResponse:
    """Render a single directive part."""
    directive_json = to_json(directive.to_wire())
    signature = _signature_headers(directive_json, request, private_key_path)

    writer = MultipartWriter(boundary)
    writer.append("directive", directive_json, headers=signature)
    return UpdateResponse(writer.to_bytes(), writer.content_type, request.protocol_version)


def serve_manifest(
    store: BundleStore,
    request: ManifestRequest,
    base_url: str,
    private_key_path: Optional[Path] = None,
    boundary: Optional[str] = None,
) -> UpdateResponse:
    """Run the full manifest flow for a validated request.

    Raises:
        BundleNotFoundError: No bundle for channel/runtime version
        MetadataNotFoundError: Bundle metadata missing or unparsable
        ConfigError: Signing requested without a configured key
    """
    bundle_path = store.resolve_latest_bundle(request.runtime_version, request.channel)
    loaded = load_metadata(bundle_path)

    # Protocol 0 clients cannot handle directives; they always get the manifest.
    if request.protocol_version == 1 and request.current_update_id == loaded.update_uuid:
        logger.info(
            f"No update: {request.channel}/{request.runtime_version} "
            f"{request.platform} already on {loaded.update_uuid}"
        )
        directive = create_no_update_available_directive(request.protocol_version)
        return render_directive(directive, request, private_key_path, boundary)

    manifest = build_manifest(bundle_path, loaded, request, base_url)
    logger.info(
        f"Manifest: {request.channel}/{request.runtime_version} "
        f"{request.platform} -> {manifest.id} ({bundle_path.name})"
    )
    return render_manifest(manifest, request, private_key_path, boundary)
