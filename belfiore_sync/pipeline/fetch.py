"""Raw feed retrieval from local files or URLs."""

from __future__ import annotations

from pathlib import Path

from belfiore_sync.common.errors import ConfigError, SourceNotFound, SourceUnavailable
from belfiore_sync.common.http import HttpClient, TimeoutConfig
from belfiore_sync.common.models import SourceProfile


class SourceFetcher:
    def __init__(
        self,
        http_client: HttpClient | None = None,
        *,
        base_dir: Path | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.http_client = http_client or HttpClient()
        self.base_dir = base_dir or Path(".")
        self.timeout = timeout

    def fetch_file(self, path: Path) -> bytes:
        if not path.is_file():
            raise SourceNotFound(f"File not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise SourceUnavailable(f"Failed to read file: {path}") from exc

    def fetch_url(self, url: str, timeout: float | None = None) -> bytes:
        seconds = self.timeout if timeout is None else timeout
        return self.http_client.get_bytes(url, timeout=TimeoutConfig(connect=seconds, read=seconds))

    def fetch(self, profile: SourceProfile) -> bytes:
        if profile.source_type == "file":
            return self.fetch_file(profile.source_path(self.base_dir))
        if profile.source_type == "url":
            return self.fetch_url(profile.source)
        raise ConfigError(f"Invalid source_type={profile.source_type}. Allowed: file, url")
