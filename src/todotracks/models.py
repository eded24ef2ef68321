"""Data models shared by the tracker and the dashboard.

Models are frozen pydantic models. Their JSON form uses the dashboard's
PascalCase field names (``FileName``, ``LineNumber``, ...), so serialize with
``by_alias=True``; both the aliases and the Python field names are accepted
when validating.
"""

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

# A 40 character hex commit id.
Revision = str

# A content-addressed git object id for a file's content.
BlobId = str


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_pascal,
        populate_by_name=True,
    )


class Alias(_WireModel):
    """A branch name and the revision it currently points at."""

    branch: str
    revision: Revision


class RevisionContents(_WireModel):
    """The tracked paths present at a revision."""

    revision: Revision
    paths: list[str]


class RevisionMetadata(_WireModel):
    """Commit metadata shown alongside a TODO."""

    revision: Revision
    timestamp: int  # Seconds since the epoch (committer time)
    subject: str
    author_name: str
    author_email: str


class MarkerLine(_WireModel):
    """A TODO line attributed to the revision that introduced it."""

    revision: Revision
    file_name: str
    line_number: int
    contents: str


class MarkerId(_WireModel):
    """Identity of a TODO as presented to a caller.

    ``revision`` is the revision the caller was looking at, which can differ
    from the revision that introduced the line.
    """

    revision: Revision
    file_name: str
    line_number: int


class MarkerDetails(_WireModel):
    """A TODO with its commit metadata and surrounding source lines."""

    id: MarkerId
    revision_metadata: RevisionMetadata
    context: str


class BranchStatus(_WireModel):
    """Partition of all branches by what happened to a TODO on each of them."""

    missing: list[Alias] = Field(default_factory=list, alias="BranchesMissing")
    present: list[Alias] = Field(default_factory=list, alias="BranchesPresent")
    removed: list[Alias] = Field(default_factory=list, alias="BranchesRemoved")


class RepoPath(_WireModel):
    """A served repository: its directory and its opaque id."""

    path: str
    repo_id: str


def to_wire(value: BaseModel | Sequence[BaseModel]) -> Any:
    """JSON-ready form of a model, or of a list of models, using wire names."""
    if not isinstance(value, BaseModel):
        return [to_wire(v) for v in value]
    return value.model_dump(mode="json", by_alias=True)
