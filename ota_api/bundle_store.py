"""Filesystem bundle store.

Layout:
    <root>/<channel>/<runtimeVersion>/<timestamp>/

Each timestamp directory is one immutable update bundle; the directory name
is seconds since epoch, so the numerically largest name is the latest
bundle. Uploads are extracted into a hidden staging directory next to the
timestamp directories and renamed into place, so readers never see a
partially extracted bundle.
"""

import io
import logging
import shutil
import tempfile
import time
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, List

from ota_api.errors import BundleIngestError, BundleNotFoundError, ValidationError

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"
SWAP_ATTEMPTS = 3


def validate_segment(value: str, field: str) -> str:
    """Ensure value can be used as a single directory name.

    Args:
        value: Channel or runtime version supplied by the client
        field: Name used in the error message

    Returns:
        The unchanged value

    Raises:
        ValidationError: If value is empty or could escape its parent directory
    """
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValidationError(f"Invalid {field}: {value!r}")
    return value


def _is_timestamp(name: str) -> bool:
    return name.isascii() and name.isdigit()


def _safe_member_path(name: str) -> PurePosixPath:
    """Normalize a zip member name, rejecting absolute or escaping paths."""
    rel = PurePosixPath(name.replace("\\", "/"))
    if rel.is_absolute() or any(part == ".." for part in rel.parts):
        raise ValueError(f"Unsafe path in archive: {name}")
    return rel


def extract_zip(zip_bytes: bytes, dest: Path) -> List[Path]:
    """Extract a zip archive held in memory into dest.

    Returns:
        Paths of the extracted files

    Raises:
        zipfile.BadZipFile: If zip_bytes is not a zip archive
        ValueError: If a member would be written outside dest
    """
    extracted = []
    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as archive:
        for info in archive.infolist():
            rel = _safe_member_path(info.filename)
            if not rel.parts:
                continue
            target = dest.joinpath(*rel.parts)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            extracted.append(target)
    return extracted


def _remove_bundle(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)


def _swap_into_place(staging: Path, target: Path, attempts: int = SWAP_ATTEMPTS) -> None:
    """Rename staging to target, replacing any bundle already there.

    A concurrent upload in the same second may rename its own staging
    directory into target between the removal and the rename, so the
    removal is retried while target keeps reappearing.
    """
    for attempt in range(1, attempts + 1):
        if target.exists():
            logger.warning(f"Replacing existing bundle {target}")
            _remove_bundle(target)
        try:
            staging.rename(target)
            return
        except OSError:
            if attempt == attempts or not target.exists():
                raise


class BundleStore:
    """Resolves and ingests update bundles under a root directory."""

    def __init__(self, root: Path, clock: Callable[[], float] = time.time):
        self.root = Path(root)
        self.clock = clock

    def runtime_dir(self, channel: str, runtime_version: str) -> Path:
        validate_segment(channel, "channel")
        validate_segment(runtime_version, "runtimeVersion")
        return self.root / channel / runtime_version

    def resolve_latest_bundle(self, runtime_version: str, channel: str) -> Path:
        """Return the most recent bundle directory for channel + runtime version.

        Raises:
            BundleNotFoundError: If the channel, the runtime version, or any
                timestamp directory is missing
        """
        channel_dir = self.root / validate_segment(channel, "channel")
        if not channel_dir.is_dir():
            raise BundleNotFoundError(f"Unsupported channel: {channel}")

        runtime_dir = channel_dir / validate_segment(runtime_version, "runtimeVersion")
        if not runtime_dir.is_dir():
            raise BundleNotFoundError(f"Unsupported runtime version: {runtime_version}")

        timestamps = [
            entry for entry in runtime_dir.iterdir()
            if entry.is_dir() and _is_timestamp(entry.name)
        ]
        if not timestamps:
            raise BundleNotFoundError(
                f"No update found for runtime version {runtime_version} on channel {channel}"
            )
        return max(timestamps, key=lambda entry: int(entry.name))

    def ingest(self, channel: str, runtime_version: str, zip_bytes: bytes) -> Path:
        """Extract a zipped bundle into a new timestamp directory.

        The timestamp is the current time truncated to seconds. If a bundle
        with the same timestamp already exists its contents are replaced.

        Returns:
            Path of the new bundle directory

        Raises:
            BundleIngestError: If extraction fails; nothing is left behind
        """
        runtime_dir = self.runtime_dir(channel, runtime_version)
        runtime_dir.mkdir(parents=True, exist_ok=True)
        target = runtime_dir / str(int(self.clock()))

        staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=runtime_dir))
        try:
            files = extract_zip(zip_bytes, staging)
            _swap_into_place(staging, target)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError, ValueError, OSError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise BundleIngestError(f"Failed to extract bundle: {e}", cause=e) from e

        logger.info(f"Ingested {len(files)} files into {target}")
        return target
