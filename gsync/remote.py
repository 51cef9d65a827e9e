"""Remote service contract and its two transports: JSON over HTTP, and a shared directory."""

from __future__ import annotations

import base64
import json
import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import unquote, urlparse
from urllib.request import Request, urlopen

from .constants import OBJECTS_DIRNAME
from .errors import InvalidNameError, RefNotFoundError, RemoteError
from .names import BranchName, Hash
from .objectstore import FileObjectStore, ObjectEntry
from . import refs

logger = logging.getLogger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 30


@dataclass(frozen=True)
class CasResult:
    """Outcome of a head update: ok, or the head the remote actually holds."""

    ok: bool
    current: Optional[Hash] = None


class RemoteAPI(Protocol):
    repo_id: str

    def create_repository(self) -> str: ...

    def get_head(self, branch: BranchName, allow_nonexistent: bool = False) -> Optional[Hash]: ...

    def has_head(self, branch: BranchName) -> bool: ...

    def set_head(self, branch: BranchName, next: Hash, current: Optional[Hash] = None) -> CasResult: ...

    def upload(self, entries: Iterable[ObjectEntry]) -> float: ...

    def download_since(self, since: float) -> Tuple[List[ObjectEntry], float]: ...

    def download(self, hashes: Iterable[Hash]) -> List[ObjectEntry]: ...


def _encode_entry(entry: ObjectEntry) -> Dict[str, str]:
    return {"hash": entry.hash, "content": base64.b64encode(entry.content).decode("ascii")}


def _decode_entry(item: Dict[str, Any]) -> ObjectEntry:
    try:
        sha = Hash(str(item["hash"]))
        content = base64.b64decode(item["content"], validate=True)
        mtime = float(item.get("mtime") or 0)
    except (KeyError, TypeError, ValueError, InvalidNameError) as e:
        raise RemoteError(f"malformed object in response: {e}") from e
    return ObjectEntry(sha, content, mtime)


class HttpRemote:
    """JSON-over-HTTP client: POST <server_url>?action=<name> with a JSON body."""

    def __init__(self, server_url: str, repo_id: str = "", api_key: str = "", timeout: float = HTTP_TIMEOUT) -> None:
        self.server_url = server_url
        self.repo_id = repo_id
        self.api_key = api_key
        self._timeout = timeout

    def _post(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.server_url}?action={action}"
        body = json.dumps(data).encode("utf-8")
        try:
            req = Request(url, data=body, method="POST", headers={"Content-Type": "application/json"})
            with urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read()
        except HTTPError as e:
            if e.code == 404 and action == "get_head":
                raise RefNotFoundError(f"branch {data.get('branch')} not found on {self.server_url}") from e
            raise RemoteError(f"HTTP {e.code}: {url}") from e
        except URLError as e:
            raise RemoteError(f"HTTP request failed: {url}: {e.reason}") from e
        except OSError as e:
            raise RemoteError(f"HTTP request failed: {url}: {e}") from e
        try:
            result = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise RemoteError(f"invalid JSON from {url}") from e
        if not isinstance(result, dict):
            raise RemoteError(f"unexpected response from {url}: {result!r}")
        return result

    def _repo_args(self) -> Dict[str, Any]:
        return {"repo_id": self.repo_id, "api_key": self.api_key}

    def create_repository(self) -> str:
        res = self._post("create", {"api_key": self.api_key})
        repo_id = res.get("repo_id")
        if not repo_id:
            raise RemoteError("create returned no repo_id")
        self.repo_id = str(repo_id)
        return self.repo_id

    def get_head(self, branch: BranchName, allow_nonexistent: bool = False) -> Optional[Hash]:
        res = self._post(
            "get_head", {**self._repo_args(), "branch": branch, "allow_nonexistent": 1 if allow_nonexistent else 0}
        )
        value = res.get("hash")
        if not value:
            if allow_nonexistent:
                return None
            raise RefNotFoundError(f"branch {branch} not found on {self.server_url}")
        try:
            return Hash(str(value).strip())
        except InvalidNameError as e:
            raise RemoteError(f"remote head of {branch} is not a hash: {value!r}") from e

    def has_head(self, branch: BranchName) -> bool:
        return self.get_head(branch, allow_nonexistent=True) is not None

    def set_head(self, branch: BranchName, next: Hash, current: Optional[Hash] = None) -> CasResult:
        data: Dict[str, Any] = {**self._repo_args(), "branch": branch, "next": next}
        if current is not None:
            data["current"] = current
        status = str(self._post("set_head", data).get("status", "")).strip()
        if status == "ok":
            return CasResult(True, Hash(next))
        try:
            return CasResult(False, Hash(status))
        except InvalidNameError as e:
            raise RemoteError(f"set_head failed: {status!r}") from e

    def upload(self, entries: Iterable[ObjectEntry]) -> float:
        objects = [_encode_entry(e) for e in entries]
        res = self._post("upload", {**self._repo_args(), "objects": objects})
        logger.debug("uploaded %d objects", len(objects))
        return float(res.get("timestamp", 0))

    def download_since(self, since: float) -> Tuple[List[ObjectEntry], float]:
        res = self._post("download", {**self._repo_args(), "since": int(since)})
        entries = [_decode_entry(item) for item in res.get("objects", [])]
        return entries, float(res.get("newest", 0))

    def download(self, hashes: Iterable[Hash]) -> List[ObjectEntry]:
        hash_list = [str(h) for h in hashes]
        res = self._post("download", {**self._repo_args(), "hash_list": hash_list})
        return [_decode_entry(item) for item in res.get("objects", [])]


class DirectoryRemote:
    """Remote kept in a plain directory: <root>/<repo_id>/objects/.. and refs/heads/<branch>.

    The layout matches what the HTTP server keeps on its disk, so a shared or network folder
    can serve as the remote without a server.
    """

    def __init__(self, root: str | Path, repo_id: str = "", api_key: str = "") -> None:
        self.root = Path(root)
        self.repo_id = repo_id
        self.api_key = api_key

    @property
    def repo_dir(self) -> Path:
        if not self.repo_id:
            raise RemoteError("no repository id")
        return self.root / self.repo_id

    def _store(self) -> FileObjectStore:
        objects_dir = self.repo_dir / OBJECTS_DIRNAME
        if not objects_dir.is_dir():
            raise RemoteError(f"repository {self.repo_id} not found in {self.root}")
        return FileObjectStore(objects_dir)

    def create_repository(self) -> str:
        self.repo_id = secrets.token_hex(8)
        (self.repo_dir / OBJECTS_DIRNAME).mkdir(parents=True)
        return self.repo_id

    def get_head(self, branch: BranchName, allow_nonexistent: bool = False) -> Optional[Hash]:
        self._store()
        head = refs.resolve_ref(self.repo_dir, BranchName(branch).ref)
        if head is None and not allow_nonexistent:
            raise RefNotFoundError(f"branch {branch} not found in {self.repo_dir}")
        return head

    def has_head(self, branch: BranchName) -> bool:
        return self.get_head(branch, allow_nonexistent=True) is not None

    def set_head(self, branch: BranchName, next: Hash, current: Optional[Hash] = None) -> CasResult:
        self._store()
        ok, actual = refs.compare_and_swap_ref(self.repo_dir, BranchName(branch).ref, next, current)
        return CasResult(ok, actual)

    def upload(self, entries: Iterable[ObjectEntry]) -> float:
        store = self._store()
        now = time.time()
        for entry in entries:
            store.put(entry.hash, entry.content)
        return now

    def download_since(self, since: float) -> Tuple[List[ObjectEntry], float]:
        newest = time.time()
        return list(self._store().iterate(since)), newest

    def download(self, hashes: Iterable[Hash]) -> List[ObjectEntry]:
        store = self._store()
        result: List[ObjectEntry] = []
        for sha in hashes:
            if store.has(sha):
                value = store.get(sha)
                result.append(ObjectEntry(Hash(sha), value.content, value.mtime))
        return result


def open_remote(server_url: str, repo_id: str = "", api_key: str = "") -> RemoteAPI:
    """HttpRemote for http(s) URLs, DirectoryRemote for file:// URLs and plain paths."""
    parsed = urlparse(server_url)
    if parsed.scheme in ("http", "https"):
        return HttpRemote(server_url, repo_id, api_key)
    if parsed.scheme == "file":
        return DirectoryRemote(unquote(parsed.path), repo_id, api_key)
    return DirectoryRemote(server_url, repo_id, api_key)
