"""Result types returned by the remote content-store client.

``get_content`` answers with exactly one of ``FileResult``,
``DirectoryResult`` or ``Missing`` so callers branch on the type instead
of probing response shapes.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FileResult:
    path: str
    sha: str
    content: bytes

    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    type: str  # "file" | "dir" | "symlink" | "submodule"
    sha: str


@dataclass(frozen=True)
class DirectoryResult:
    path: str
    entries: list[DirectoryEntry] = field(default_factory=list)


@dataclass(frozen=True)
class Missing:
    path: str


ContentResult = FileResult | DirectoryResult | Missing


@dataclass(frozen=True)
class TreeEntry:
    path: str
    sha: str
    type: str  # "blob" | "tree" | "commit"


@dataclass(frozen=True)
class WriteResult:
    path: str
    sha: str


@dataclass(frozen=True)
class RepositoryInfo:
    owner: str
    name: str
    default_branch: str
    description: str | None = None
