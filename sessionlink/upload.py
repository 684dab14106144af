"""
Upload collaborator - hands a finished bundle to a dataset host.

The pipeline depends only on the Uploader protocol. HubUploader implements it
against the Hugging Face Hub commit API: a single NDJSON request carrying a
header line (commit summary/description) and one base64 file line.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from .config import HubConfig

logger = logging.getLogger(__name__)

# Status codes the Hub returns when a pull request cannot be opened
PR_REFUSED_STATUSES = (400, 403)

_DISCUSSION_NUM = re.compile(r"/discussions/(\d+)")


@dataclass
class UploadRequest:
    """A bundle ready to be committed."""

    content: bytes
    bundle_format: str
    bundle_id: str
    repo_id: str
    create_pr: bool = True
    commit_message: str = ""
    pr_title: str = ""
    pr_description: str = ""

    @property
    def path_in_repo(self) -> str:
        return f"contributions/{self.bundle_id}.{self.bundle_format}"


@dataclass
class UploadResult:
    """Outcome of an upload attempt."""

    success: bool
    url: str | None = None
    pr_number: int | None = None
    commit_sha: str | None = None
    is_pull_request: bool = False
    was_fallback: bool = False
    error: str | None = None


class Uploader(Protocol):
    """Anything that can publish a bundle."""

    async def upload(self, request: UploadRequest) -> UploadResult:
        ...


def build_commit_payload(request: UploadRequest, as_pr: bool) -> bytes:
    """NDJSON body for the Hub commit endpoint."""
    summary = request.pr_title if as_pr and request.pr_title else request.commit_message
    header = {
        "key": "header",
        "value": {
            "summary": summary or f"Add {request.path_in_repo}",
            "description": request.pr_description,
        },
    }
    file_line = {
        "key": "file",
        "value": {
            "path": request.path_in_repo,
            "encoding": "base64",
            "content": base64.b64encode(request.content).decode("ascii"),
        },
    }
    return (json.dumps(header) + "\n" + json.dumps(file_line) + "\n").encode("utf-8")


def parse_pr_number(url: str | None) -> int | None:
    if not url:
        return None
    match = _DISCUSSION_NUM.search(url)
    return int(match.group(1)) if match else None


class HubUploader:
    """
    Hugging Face Hub dataset uploader.

    When a pull request is requested but the Hub refuses it, the bundle is
    committed directly to main and the result is marked was_fallback.
    """

    def __init__(
        self,
        config: HubConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or HubConfig()
        self._transport = transport

    def _commit_url(self, repo_id: str) -> str:
        return f"{self.config.endpoint.rstrip('/')}/api/datasets/{repo_id}/commit/main"

    async def _commit(self, client: httpx.AsyncClient, request: UploadRequest, as_pr: bool) -> httpx.Response:
        params = {"create_pr": "1"} if as_pr else None
        return await client.post(
            self._commit_url(request.repo_id),
            params=params,
            content=build_commit_payload(request, as_pr),
            headers={
                "Authorization": f"Bearer {self.config.token}",
                "Content-Type": "application/x-ndjson",
            },
        )

    def _result(self, request: UploadRequest, response: httpx.Response, as_pr: bool, fallback: bool) -> UploadResult:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        pr_url = data.get("pullRequestUrl")
        commit_url = data.get("commitUrl")
        default_url = f"{self.config.endpoint.rstrip('/')}/datasets/{request.repo_id}"
        return UploadResult(
            success=True,
            url=pr_url or commit_url or default_url,
            pr_number=parse_pr_number(pr_url),
            commit_sha=data.get("commitOid"),
            is_pull_request=as_pr and bool(pr_url),
            was_fallback=fallback,
        )

    async def upload(self, request: UploadRequest) -> UploadResult:
        """
        Commit the bundle to the dataset repository.

        Returns:
            UploadResult; transport and HTTP errors are reported, not raised
        """
        if not self.config.token:
            return UploadResult(success=False, error="Hugging Face token not configured")
        if not request.repo_id:
            return UploadResult(success=False, error="Dataset repo_id is required")

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await self._commit(client, request, as_pr=request.create_pr)

                if request.create_pr and response.status_code in PR_REFUSED_STATUSES:
                    logger.info(
                        f"Pull request refused for {request.repo_id} "
                        f"({response.status_code}); committing directly"
                    )
                    response = await self._commit(client, request, as_pr=False)
                    fallback = True
                    as_pr = False
                else:
                    fallback = False
                    as_pr = request.create_pr

                if response.status_code >= 400:
                    detail = response.text[:500]
                    logger.warning(f"Upload to {request.repo_id} failed: {response.status_code} {detail}")
                    return UploadResult(
                        success=False,
                        error=f"Upload failed ({response.status_code}): {detail}",
                        was_fallback=fallback,
                    )

                return self._result(request, response, as_pr, fallback)

        except httpx.HTTPError as e:
            logger.warning(f"Upload to {request.repo_id} failed: {e}")
            return UploadResult(success=False, error=f"Upload failed: {e}")


__all__ = [
    "UploadRequest",
    "UploadResult",
    "Uploader",
    "HubUploader",
    "build_commit_payload",
    "parse_pr_number",
]
