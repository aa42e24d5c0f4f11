"""
PDB (RCSB) Service

Resolve structure identifiers to local mmCIF files, downloading from RCSB PDB
on first request
"""
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Union

import requests

from app.util import KeyedLocks, validate_pdb_id


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20
CHUNK_SIZE = 64 * 1024
USER_AGENT = "structure-service/1.0"


# ─── Errors ────────────────────────────────────────────
class StructureFetchError(Exception):
    """Base error for a structure that could not be resolved"""

    def __init__(self, pdb_id: str, message: str):
        super().__init__(message)
        self.pdb_id = pdb_id


class InvalidIdentifier(StructureFetchError, ValueError):
    """Identifier is not usable as a cache key"""

    def __init__(self, pdb_id: str):
        super().__init__(pdb_id, f"Invalid structure identifier: {pdb_id!r}")


class RemoteFetchFailed(StructureFetchError):
    """Remote answered with a non-200 status or the transport failed"""

    def __init__(self, pdb_id: str, status: Optional[int] = None, reason: str = ""):
        if status is not None:
            msg = f"Failed to download structure {pdb_id}: HTTP {status}"
        else:
            msg = f"Failed to download structure {pdb_id}: {reason or 'transport error'}"
        super().__init__(pdb_id, msg)
        self.status = status


class LocalIOFailed(StructureFetchError):
    """Cache directory or file could not be written"""

    def __init__(self, pdb_id: str, error: OSError):
        super().__init__(pdb_id, f"Failed to store structure {pdb_id}: {error}")
        self.error = error


# ─── Resolver ──────────────────────────────────────────
def _default_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def _discard(path: Path):
    """Remove a partial download if one was left behind"""
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.exception("Could not remove partial file %s", path)


class StructureResolver:
    """
    Fetch-or-cache resolver for mmCIF files

    A cached file lives at ``<cache_dir>/<ID>.cif`` and is never refreshed.
    Downloads are serialized per identifier, so concurrent requests for the
    same uncached structure produce a single fetch.
    """

    def __init__(
        self,
        remote_base_url: str,
        cache_dir: Union[str, Path],
        session: Optional[requests.Session] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.remote_base_url = remote_base_url.rstrip("/")
        self.cache_dir = Path(cache_dir)
        self._session = session if session is not None else _default_session()
        self._locks = locks if locks is not None else KeyedLocks()

    @staticmethod
    def _normalize(pdb_id: str) -> str:
        try:
            return validate_pdb_id(pdb_id)
        except ValueError:
            raise InvalidIdentifier(pdb_id) from None

    def cache_path(self, pdb_id: str) -> Path:
        """Deterministic local path for an identifier"""
        return self.cache_dir / f"{self._normalize(pdb_id)}.cif"

    def url_for(self, pdb_id: str) -> str:
        return f"{self.remote_base_url}/{self._normalize(pdb_id)}.cif"

    def is_cached(self, pdb_id: str) -> bool:
        return self.cache_path(pdb_id).exists()

    def resolve(self, pdb_id: str) -> Path:
        """
        Return the local path of a structure, downloading it if absent

        Concurrent callers for the same uncached identifier share the
        outcome of a single fetch: they all get its path, or all see its
        error. A later call, made once they have all returned, tries again.

        Args:
            pdb_id: Structure identifier (case-insensitive)

        Returns:
            Path to the cached mmCIF file

        Raises:
            InvalidIdentifier: identifier is empty or not alphanumeric
            RemoteFetchFailed: non-200 response or transport error
            LocalIOFailed: cache directory or file could not be written
        """
        pid = self._normalize(pdb_id)
        path = self.cache_dir / f"{pid}.cif"

        if path.exists():
            logger.debug("Cache hit: %s", path)
            return path

        with self._locks.hold(pid) as outcome:
            if outcome.done():
                # an earlier holder already fetched (or failed to)
                return outcome.result()

            try:
                path = self._fetch_if_missing(pid, path)
            except Exception as e:
                outcome.set_exception(e)
                raise
            outcome.set_result(path)

        return path

    def _fetch_if_missing(self, pid: str, path: Path) -> Path:
        # another process may have stored the file since the unlocked check
        if path.exists():
            logger.debug("Cache filled while waiting: %s", path)
            return path

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create cache directory %s: %s", self.cache_dir, e)
            raise LocalIOFailed(pid, e) from e

        self._download(pid, path)
        return path

    def _download(self, pid: str, path: Path):
        url = f"{self.remote_base_url}/{pid}.cif"
        logger.info("Fetching %s from %s", pid, url)

        # unique per writer so parallel workers never share a temp file
        try:
            fd, tmp = tempfile.mkstemp(dir=self.cache_dir, prefix=f"{pid}.", suffix=".part")
        except OSError as e:
            logger.error("Cannot create temp file in %s: %s", self.cache_dir, e)
            raise LocalIOFailed(pid, e) from e

        part = Path(tmp)
        stored = False
        try:
            with os.fdopen(fd, "wb") as fh:
                size = self._stream_to_file(pid, url, fh)
            part.replace(path)
            stored = True
        except requests.exceptions.RequestException as e:
            logger.warning("Transport error fetching %s: %s", pid, e)
            raise RemoteFetchFailed(pid, reason=str(e)) from e
        except OSError as e:
            logger.error("Cannot write %s: %s", path, e)
            raise LocalIOFailed(pid, e) from e
        finally:
            if not stored:
                _discard(part)

        logger.info("Stored %s (%d bytes) at %s", pid, size, path)

    def _stream_to_file(self, pid: str, url: str, fh: BinaryIO) -> int:
        """Stream the response body into ``fh``; returns bytes written"""
        with self._session.get(url, stream=True, timeout=DEFAULT_TIMEOUT) as r:
            if r.status_code != 200:
                logger.warning("Remote returned HTTP %s for %s", r.status_code, pid)
                raise RemoteFetchFailed(pid, r.status_code)

            size = 0
            for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    fh.write(chunk)
                    size += len(chunk)

        if size == 0:
            raise RemoteFetchFailed(pid, reason="empty response body")
        return size
