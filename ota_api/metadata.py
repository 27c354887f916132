"""Bundle metadata loading and update id derivation.

The update id is the SHA-256 of the raw metadata.json bytes, so any change
to the bundle's file listing yields a new id. Clients echo the UUID form of
the id back in expo-current-update-id and the no-update check compares the
two strings verbatim: changing convert_sha256_hash_to_uuid makes every id
already issued unmatchable, and all clients re-download their update once.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ota_api.errors import InternalError, MetadataNotFoundError
from ota_api.models import BundleMetadata

METADATA_FILE = "metadata.json"
EXPO_CONFIG_FILE = "expoConfig.json"


@dataclass
class LoadedMetadata:
    """Parsed metadata of one bundle.

    Attributes:
        metadata: Validated metadata.json contents
        created_at: Bundle creation time, ISO-8601 UTC
        id: SHA-256 hex digest of the raw metadata.json bytes
    """

    metadata: BundleMetadata
    created_at: str
    id: str

    @property
    def update_uuid(self) -> str:
        return convert_sha256_hash_to_uuid(self.id)


def convert_sha256_hash_to_uuid(value: str) -> str:
    """Format a SHA-256 hex digest as an RFC 4122 version 4 UUID.

    Takes the first 16 bytes of the digest and forces the version nibble
    to 4 and the variant bits to 10. Pure and deterministic.

    Args:
        value: 64-character SHA-256 hex digest

    Returns:
        UUID string, e.g. 9f86d081-884c-4d63-9a2f-e5b0b4b8c1f2
    """
    digest = bytes.fromhex(value)
    if len(digest) != 32:
        raise ValueError(f"Expected a SHA-256 hex digest, got {len(digest)} bytes")
    return str(uuid.UUID(bytes=digest[:16], version=4))


def format_timestamp(seconds: float) -> str:
    """ISO-8601 UTC with millisecond precision and Z suffix."""
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def bundle_created_at(bundle_path: Path) -> str:
    """Creation time of a bundle.

    The directory name is the upload timestamp; falls back to the directory
    mtime for bundles placed on disk by hand under a non-numeric name.
    """
    name = bundle_path.name
    if name.isascii() and name.isdigit():
        return format_timestamp(int(name))
    return format_timestamp(bundle_path.stat().st_mtime)


def load_metadata(bundle_path: Path) -> LoadedMetadata:
    """Load and validate metadata.json from a bundle directory.

    Raises:
        MetadataNotFoundError: If the file is missing or not valid JSON
        InternalError: If the JSON does not have the expected shape
    """
    metadata_path = Path(bundle_path) / METADATA_FILE
    try:
        raw = metadata_path.read_bytes()
        data = json.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MetadataNotFoundError(
            f"No update metadata found in bundle {Path(bundle_path).name}: {e}", cause=e
        ) from e

    try:
        metadata = BundleMetadata.model_validate(data)
    except PydanticValidationError as e:
        raise InternalError(f"Malformed {METADATA_FILE}: {e}", cause=e) from e

    return LoadedMetadata(
        metadata=metadata,
        created_at=bundle_created_at(Path(bundle_path)),
        id=hashlib.sha256(raw).hexdigest(),
    )


def load_expo_config(bundle_path: Path) -> Optional[Dict[str, Any]]:
    """Load expoConfig.json if the bundle ships one."""
    config_path = Path(bundle_path) / EXPO_CONFIG_FILE
    if not config_path.is_file():
        return None
    try:
        return json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InternalError(f"Malformed {EXPO_CONFIG_FILE}: {e}", cause=e) from e
