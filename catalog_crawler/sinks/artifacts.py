"""Artifact storage for screenshots, samples and page snapshots."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from catalog_crawler.config import settings

logger = logging.getLogger(__name__)


class ArtifactUploadError(RuntimeError):
    """Raised when an artifact cannot be stored."""
    pass


class ArtifactSink(Protocol):
    """Stores a named blob and returns where it can be found."""

    async def upload(self, name: str, data: bytes, folder: str = "") -> str:
        ...


def timestamped_name(prefix: str, extension: str, timestamp: Optional[datetime] = None) -> str:
    """``<prefix>_<YYYYmmdd_HHMMSS_ffffff>.<extension>``"""
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    return f"{prefix}_{timestamp.strftime('%Y%m%d_%H%M%S_%f')}.{extension}"


class LocalArtifactWriter:
    """
    Writes artifacts under a local directory.

    Used when no GitHub repository is configured, and for page snapshots
    kept alongside screenshots when a site runs in debug mode.
    """

    def __init__(self, base_path: Optional[str] = None):
        """
        Args:
            base_path: Base path for artifact storage (defaults to config)
        """
        self.base_path = Path(base_path or settings.artifacts_dir)

    async def upload(self, name: str, data: bytes, folder: str = "") -> str:
        """
        Write one artifact.

        Returns:
            ``file://`` URI of the written file

        Raises:
            ArtifactUploadError: If the file cannot be written
        """
        target_dir = self.base_path / folder if folder else self.base_path
        target = target_dir / name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
        except OSError as e:
            raise ArtifactUploadError(f"Could not write artifact {target}: {e}") from e

        logger.info(f"Wrote artifact to {target}")
        return target.resolve().as_uri()

    async def write_page_bundle(self, site: str, url: str, html: str, screenshot: Optional[bytes] = None) -> Path:
        """Save a page snapshot (and screenshot) for offline selector debugging."""
        stamp = datetime.now(timezone.utc)
        folder = f"debug/{site}"
        await self.upload(timestamped_name("page", "html", stamp), f"<!-- {url} -->\n{html}".encode("utf-8"), folder)
        if screenshot:
            await self.upload(timestamped_name("page", "png", stamp), screenshot, folder)
        return self.base_path / folder


def default_artifact_sink() -> ArtifactSink:
    """GitHub when a token and repository are configured, local files otherwise."""
    if settings.github_token and settings.github_repo:
        from catalog_crawler.sinks.github import GitHubUploader

        return GitHubUploader()
    return LocalArtifactWriter()
