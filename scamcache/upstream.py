"""
Synchronisation with the upstream listing repository.

- `ensure_data_files`: download the data file when it is not present locally.
- `pull_data`: re-download the data file and reload the static entry fields.
- `create_pull_request`: propose locally reported listings upstream as a PR.

The data file is a JSON list of listing objects. Only the static fields
(`id`, `name`, `url`, `category`, `subcategory`, `description`) are read from
it; the probe-owned fields belong to the reconciler.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from scamcache.config import Settings
from scamcache.domain.models import Entry, entry_id_for_url
from scamcache.infrastructure.github import GitHubClient, UpstreamError
from scamcache.infrastructure.store import CacheStore
from scamcache.utils.logging import get_logger

log = get_logger(__name__)

STATIC_FIELDS = ("id", "name", "url", "category", "subcategory", "description")


class DataFileError(ValueError):
    """The data file is not a JSON list of listing objects."""


def _load_records(content: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise DataFileError(f"data file is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise DataFileError(f"data file must hold a list, got {type(data).__name__}")
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise DataFileError(f"record {index} is not an object")
    return data


def parse_entries(content: str) -> List[Entry]:
    """
    Parse data file content into entries.

    A record without an `id` gets one derived from its url.

    Raises
    ------
    DataFileError
        If the content is not a list of objects, a record has neither id nor
        url, or a field has the wrong type.
    """
    entries: List[Entry] = []
    for index, record in enumerate(_load_records(content)):
        fields = {key: record.get(key) for key in STATIC_FIELDS}
        if fields["id"] in (None, ""):
            if not fields["url"]:
                raise DataFileError(f"record {index} has neither id nor url")
            fields["id"] = entry_id_for_url(str(fields["url"]))
        try:
            entries.append(Entry.model_validate(fields))
        except ValidationError as exc:
            raise DataFileError(f"record {index} is invalid: {exc}") from exc
    return entries


def read_local_entries(path: Path) -> List[Entry]:
    return parse_entries(path.read_text(encoding="utf-8"))


async def download_data_file(settings: Settings, github: GitHubClient) -> str:
    """Download the upstream data file, validate it and write it locally."""
    content = await github.download_raw(settings.github_data_path, branch=settings.github_branch)
    parse_entries(content)
    path = settings.data_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    log.info("Data file written", extra={"path": str(path)})
    return content


async def ensure_data_files(settings: Settings, github: GitHubClient) -> bool:
    """
    Pull the data file if it is absent. Returns True when a download happened.
    """
    if settings.data_path.exists():
        return False
    log.info("Data file missing, pulling from upstream", extra={"path": str(settings.data_path)})
    await download_data_file(settings, github)
    return True


async def pull_data(settings: Settings, github: GitHubClient, store: CacheStore) -> int:
    """Refresh the local data file from upstream and reload entries. Returns the entry count."""
    content = await download_data_file(settings, github)
    return await store.load_entries(parse_entries(content))


async def create_pull_request(
    settings: Settings, github: GitHubClient, store: CacheStore
) -> Optional[str]:
    """
    Propose pending reports upstream.

    Reports whose url is already listed upstream are marked submitted without a
    PR. Returns the pull request url, or None when nothing was opened.
    """
    if not github.has_token:
        log.debug("No GitHub token configured, skipping pull request")
        return None

    reports = await store.pending_reports()
    if not reports:
        log.debug("No pending reports")
        return None

    content, blob_sha = await github.get_file(settings.github_data_path, settings.github_branch)
    records = _load_records(content)
    listed = {str(r.get("url")) for r in records if r.get("url")}

    additions: List[Dict[str, Any]] = []
    for report in reports:
        if report.url in listed:
            continue
        listed.add(report.url)
        additions.append(report.to_listing())

    report_ids = [r.id for r in reports if r.id is not None]
    if not additions:
        await store.mark_reports_submitted(report_ids, None)
        log.info("Pending reports already listed upstream", extra={"reports": len(report_ids)})
        return None

    branch = f"scamcache/reports-{datetime.now(timezone.utc):%Y%m%d%H%M%S}"
    base_sha = await github.get_branch_sha(settings.github_branch)
    await github.create_branch(branch, base_sha)
    await github.put_file(
        settings.github_data_path,
        json.dumps(records + additions, indent=2, ensure_ascii=False) + "\n",
        message=f"Add {len(additions)} reported listing(s)",
        branch=branch,
        sha=blob_sha,
    )
    url = await github.open_pull_request(
        title=f"Add {len(additions)} reported listing(s)",
        head=branch,
        base=settings.github_branch,
        body="\n".join(f"- {listing['url']}" for listing in additions),
    )
    await store.mark_reports_submitted(report_ids, url)
    log.info("Reports submitted", extra={"reports": len(report_ids), "pull_request": url})
    return url


__all__ = [
    "DataFileError",
    "UpstreamError",
    "create_pull_request",
    "download_data_file",
    "ensure_data_files",
    "parse_entries",
    "pull_data",
    "read_local_entries",
]
