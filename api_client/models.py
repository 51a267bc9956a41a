
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from .utils import build_url_with_params


class HttpMethod(str, Enum):
    """HTTP methods supported by the client"""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    @classmethod
    def parse(cls, text) -> Optional["HttpMethod"]:
        """Case-insensitive lookup, None when the text is not a known method"""
        if not isinstance(text, str):
            return None
        try:
            return cls(text.strip().upper())
        except ValueError:
            return None

    @classmethod
    def from_text(cls, text) -> "HttpMethod":
        return cls.parse(text) or cls.GET

    @property
    def allows_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)

    def next(self) -> "HttpMethod":
        members = list(HttpMethod)
        return members[(members.index(self) + 1) % len(members)]


@dataclass
class KeyValue:
    """One editable row of the params or headers table"""

    key: str = ""
    value: str = ""
    enabled: bool = True


@dataclass
class Request:
    name: str = ""
    method: HttpMethod = HttpMethod.GET
    url: str = ""
    parameters: List[KeyValue] = field(default_factory=list)
    headers: List[KeyValue] = field(default_factory=list)
    body: str = ""

    def effective_headers(self) -> List[Tuple[str, str]]:
        # Empty keys never make it out, enabled or not
        return [(h.key, h.value) for h in self.headers if h.enabled and h.key]

    def effective_url(self) -> str:
        return build_url_with_params(self.url, self.parameters)


class SavedRequest(BaseModel):
    """On-disk request file format"""

    name: str
    method: str
    url: str
    headers: Dict[str, str] = {}
    body: str = ""


@dataclass(frozen=True)
class WorkspaceEntry:
    display_name: str
    path: str
    inferred_method: Optional[HttpMethod] = None


@dataclass(frozen=True)
class ResponseRecord:
    status_code: int
    status_label: str
    elapsed: float
    body: str
    body_oversized: bool = False
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code == 0


class FileStatus(Enum):
    NEW = "New"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    RENAMED = "Renamed"
    TYPECHANGE = "Typechange"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class FileChange:
    path: str
    kind: FileStatus
    staged: bool


@dataclass(frozen=True)
class RepositoryStatus:
    branch_name: Optional[str]
    changes: Tuple[FileChange, ...] = ()

    @property
    def staged(self) -> List[FileChange]:
        return [c for c in self.changes if c.staged]

    @property
    def unstaged(self) -> List[FileChange]:
        return [c for c in self.changes if not c.staged]
