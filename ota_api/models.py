"""Pydantic models for bundle metadata and expo-updates wire entities.

Bundle layout:
- <updates_root>/<channel>/<runtimeVersion>/<timestamp>/metadata.json
- asset files referenced from metadata.json by bundle-relative path

Wire entities serialize with camelCase keys (createdAt, launchAsset, ...)
as expected by the expo-updates client.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Platform = Literal["ios", "android"]
PLATFORMS = ("ios", "android")


# Bundle metadata (metadata.json written by `expo export`)


class AssetEntry(BaseModel):
    """One non-launch asset of a platform."""

    path: str = Field(..., min_length=1)
    ext: str


class PlatformMetadata(BaseModel):
    """Launch bundle and assets for a single platform."""

    bundle: str = Field(..., min_length=1)
    assets: List[AssetEntry] = Field(default_factory=list)


class FileMetadata(BaseModel):
    """Per-platform file listing. Other platforms (e.g. web) are ignored."""

    model_config = ConfigDict(extra="ignore")

    ios: Optional[PlatformMetadata] = None
    android: Optional[PlatformMetadata] = None

    def for_platform(self, platform: str) -> Optional[PlatformMetadata]:
        return getattr(self, platform, None) if platform in PLATFORMS else None


class BundleMetadata(BaseModel):
    """Parsed metadata.json. Keys such as version and bundler are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    file_metadata: FileMetadata = Field(..., alias="fileMetadata")


# Wire entities


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump with camelCase keys, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AssetDescriptor(WireModel):
    """Asset entry of a manifest.

    hash: base64url SHA-256 of the file, no padding (client integrity check)
    key: hex SHA-256 of the file (client cache key)
    """

    hash: str
    key: str
    file_extension: str
    content_type: str
    url: str


class Manifest(WireModel):
    id: str
    created_at: str
    runtime_version: str
    launch_asset: AssetDescriptor
    assets: List[AssetDescriptor]
    metadata: Dict[str, Any] = Field(default_factory=dict)
    extra: Optional[Dict[str, Any]] = None


class NoUpdateAvailableDirective(WireModel):
    """Protocol 1 directive: the client already runs the latest update."""

    type: Literal["noUpdateAvailable"] = "noUpdateAvailable"


# Response envelope


class ApiResponse(BaseModel):
    """Envelope shared by error responses and the upload endpoint."""

    error: Optional[Any] = None
    message: str
    result: Optional[Any] = None


class HealthResponse(BaseModel):
    status: str
    version: str
