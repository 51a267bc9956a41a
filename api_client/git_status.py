
import logging
from typing import List, Optional

import pygit2
from pygit2.enums import FileStatus as GitFlags

from .models import FileChange, FileStatus, RepositoryStatus

logger = logging.getLogger("RepoStatus")

STAGED_FLAGS = (GitFlags.INDEX_NEW | GitFlags.INDEX_MODIFIED | GitFlags.INDEX_DELETED
                | GitFlags.INDEX_RENAMED | GitFlags.INDEX_TYPECHANGE)
UNSTAGED_FLAGS = (GitFlags.WT_NEW | GitFlags.WT_MODIFIED | GitFlags.WT_DELETED
                  | GitFlags.WT_RENAMED | GitFlags.WT_TYPECHANGE)

# First match wins
KIND_PRECEDENCE = [
    (GitFlags.INDEX_NEW | GitFlags.WT_NEW, FileStatus.NEW),
    (GitFlags.INDEX_MODIFIED | GitFlags.WT_MODIFIED, FileStatus.MODIFIED),
    (GitFlags.INDEX_DELETED | GitFlags.WT_DELETED, FileStatus.DELETED),
    (GitFlags.INDEX_RENAMED | GitFlags.WT_RENAMED, FileStatus.RENAMED),
    (GitFlags.INDEX_TYPECHANGE | GitFlags.WT_TYPECHANGE, FileStatus.TYPECHANGE),
]


class NotARepository(Exception):
    """No repository at or above the folder"""


def map_status(flags) -> FileStatus:
    for mask, kind in KIND_PRECEDENCE:
        if flags & mask:
            return kind
    return FileStatus.UNKNOWN


class RepositoryStatusReader:
    """Read-only view of a working tree's staged and unstaged changes"""

    def __init__(self, repo: pygit2.Repository):
        self.repo = repo

    @classmethod
    def open(cls, folder) -> "RepositoryStatusReader":
        try:
            path = pygit2.discover_repository(str(folder))
            if path is None:
                raise NotARepository(str(folder))
            return cls(pygit2.Repository(path))
        except pygit2.GitError as e:
            raise NotARepository(str(folder)) from e

    def changes(self) -> List[FileChange]:
        try:
            statuses = self.repo.status()
        except pygit2.GitError as e:
            logger.warning(f"Failed to read status: {e}")
            return []

        changes = []
        for path in sorted(statuses):
            flags = statuses[path]
            kind = map_status(flags)
            # Staged and unstaged sides are separate rows
            if flags & STAGED_FLAGS:
                changes.append(FileChange(path, kind, staged=True))
            if flags & UNSTAGED_FLAGS:
                changes.append(FileChange(path, kind, staged=False))
        return changes

    def current_branch(self) -> Optional[str]:
        try:
            if self.repo.head_is_unborn or self.repo.head_is_detached:
                return "HEAD"
            return self.repo.head.shorthand
        except pygit2.GitError as e:
            logger.warning(f"Failed to read HEAD: {e}")
            return None

    def status(self) -> RepositoryStatus:
        return RepositoryStatus(branch_name=self.current_branch(), changes=tuple(self.changes()))


def repository_status(folder) -> Optional[RepositoryStatus]:
    """Status for folder, None when it is not under version control"""
    try:
        reader = RepositoryStatusReader.open(folder)
    except NotARepository:
        logger.info(f"No repository at {folder}")
        return None
    return reader.status()
