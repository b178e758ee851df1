"""
A concrete ArtifactFetcher for http(s) and file:// source locations.
"""
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests

from cuckoo_tap.internal.constants import APP_NAME, DOWNLOAD_TIMEOUT
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.errors import FetchError
from cuckoo_tap.kernel.ports import ArtifactFetcher

logger = get_logger(__name__)


class HttpArtifactFetcher(ArtifactFetcher):
    """
    Streams downloads into a temporary file and renames it into place, so a
    failed download never leaves a partial artifact behind.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = DOWNLOAD_TIMEOUT,
        chunk_size: int = 1024 * 1024,
    ):
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = APP_NAME
        self._timeout = timeout
        self._chunk_size = chunk_size

    def fetch(self, url: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        temp_path = destination.with_suffix(f"{destination.suffix}.tmp")
        scheme = urlparse(url).scheme
        try:
            if scheme in ("http", "https"):
                self._download(url, temp_path)
            elif scheme == "file":
                self._copy_local(url, temp_path)
            else:
                raise FetchError(f"Unsupported source location: {url}")
            temp_path.replace(destination)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Download failed for {url}: {e}") from e
        except OSError as e:
            raise FetchError(f"Could not fetch {url}: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        logger.info("Fetched artifact", url=url, path=str(destination), bytes=destination.stat().st_size)
        return destination

    def _download(self, url: str, target: Path) -> None:
        with self._session.get(url, stream=True, timeout=self._timeout) as r:
            r.raise_for_status()
            with open(target, "wb") as f:
                for chunk in r.iter_content(chunk_size=self._chunk_size):
                    f.write(chunk)

    def _copy_local(self, url: str, target: Path) -> None:
        parsed = urlparse(url)
        source = Path(url2pathname(unquote(parsed.path)))
        if not source.is_file():
            raise FetchError(f"Local artifact not found: {source}")
        shutil.copyfile(source, target)
