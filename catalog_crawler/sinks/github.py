"""Upload artifacts to a GitHub repository through the contents API."""

import asyncio
import base64
import logging
import random
from typing import Optional

import httpx

from catalog_crawler.config import settings
from catalog_crawler.sinks.artifacts import ArtifactUploadError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.ReadTimeout,
    httpx.ConnectTimeout,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
)

# 409: concurrent write to the same path changed the sha
RETRYABLE_STATUS = {409, 429, 500, 502, 503, 504}


class GitHubUploader:
    """Stores artifacts as files in ``owner/name`` on one branch."""

    def __init__(
        self,
        token: str | None = None,
        repo: str | None = None,
        branch: str | None = None,
        max_retries: int | None = None,
        client: httpx.AsyncClient | None = None,
        backoff_base: float = 1.0,
    ):
        self.token = token or settings.github_token
        self.repo = repo or settings.github_repo
        self.branch = branch or settings.github_branch
        self.max_retries = max_retries or settings.github_max_retries
        self.backoff_base = backoff_base
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _contents_url(self, path: str) -> str:
        return f"{GITHUB_API}/repos/{self.repo}/contents/{path}"

    async def _existing_sha(self, client: httpx.AsyncClient, path: str) -> Optional[str]:
        resp = await client.get(self._contents_url(path), headers=self._headers(), params={"ref": self.branch})
        if resp.status_code == 200:
            return resp.json().get("sha")
        return None

    async def upload(self, name: str, data: bytes, folder: str = "") -> str:
        """
        Create or overwrite a file in the repository.

        Args:
            name: File name
            data: File content
            folder: Directory inside the repository

        Returns:
            ``html_url`` of the stored file

        Raises:
            ArtifactUploadError: If the upload fails after retries
        """
        if not self.token or not self.repo:
            raise ArtifactUploadError("GitHub token or repository is not configured")

        path = f"{folder.strip('/')}/{name}" if folder else name
        body = {
            "message": f"Upload {path}",
            "content": base64.b64encode(data).decode("ascii"),
            "branch": self.branch,
        }

        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(connect=10.0, read=60.0, write=60.0, pool=10.0))
        try:
            return await self._put_with_retry(client, path, body)
        finally:
            if self._client is None:
                await client.aclose()

    async def _put_with_retry(self, client: httpx.AsyncClient, path: str, body: dict) -> str:
        last_error: str = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                sha = await self._existing_sha(client, path)
                payload = dict(body, sha=sha) if sha else body
                resp = await client.put(self._contents_url(path), headers=self._headers(), json=payload)

                if resp.status_code in (200, 201):
                    url = resp.json().get("content", {}).get("html_url", "")
                    logger.info(f"Uploaded {path} to {self.repo}")
                    return url

                if resp.status_code not in RETRYABLE_STATUS:
                    raise ArtifactUploadError(f"GitHub upload of {path} failed: {resp.status_code} {resp.text[:200]}")

                last_error = f"status {resp.status_code}"

            except RETRYABLE_EXC as e:
                last_error = type(e).__name__

            if attempt < self.max_retries:
                sleep_s = self.backoff_base * (2 ** attempt) + random.random() * self.backoff_base
                logger.warning(
                    f"GitHub upload of {path} failed ({last_error}), retrying in {sleep_s:.1f}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(sleep_s)

        raise ArtifactUploadError(f"GitHub upload of {path} failed after {self.max_retries} attempts: {last_error}")
