"""Comments and replies embedded in politics-site articles.

Votes are toggles: a second vote in the same direction retracts the first,
a vote in the opposite direction moves the voter across. A voter id is never
in both ``upvotedBy`` and ``downvotedBy``.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from newsdesk.clock import utcnow


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"


def _new_id() -> str:
    return uuid4().hex[:24]


class _Votable(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    username: str = Field(min_length=2, max_length=30)
    content: str = Field(min_length=1)
    is_edited: bool = Field(False, alias="isEdited")
    edited_at: datetime | None = Field(None, alias="editedAt")
    upvotes: int = 0
    downvotes: int = 0
    upvoted_by: list[str] = Field(default_factory=list, alias="upvotedBy")
    downvoted_by: list[str] = Field(default_factory=list, alias="downvotedBy")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    def vote(self, voter: str, direction: VoteDirection) -> None:
        if direction is VoteDirection.UP:
            same, opposite = self.upvoted_by, self.downvoted_by
        else:
            same, opposite = self.downvoted_by, self.upvoted_by

        if voter in same:
            same.remove(voter)
        else:
            if voter in opposite:
                opposite.remove(voter)
            same.append(voter)

        # Counts always mirror the voter sets
        self.upvotes = len(self.upvoted_by)
        self.downvotes = len(self.downvoted_by)

    def edit(self, content: str, now: datetime) -> None:
        self.content = content
        self.is_edited = True
        self.edited_at = now
        self.updated_at = now

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Reply(_Votable):
    content: str = Field(min_length=1, max_length=500)


class Comment(_Votable):
    content: str = Field(min_length=1, max_length=1000)
    replies: list[Reply] = Field(default_factory=list)

    def find_reply(self, reply_id: str) -> Reply | None:
        return next((r for r in self.replies if r.id == reply_id), None)


class CommentIn(BaseModel):
    """Body for new comments and replies."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=2, max_length=30)
    content: str = Field(min_length=1, max_length=1000)


class CommentEdit(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=1000)


COMMENT_SORTS = ("newest", "oldest", "top", "controversial")


def sort_comments(comments: list[Comment], sort: str) -> list[Comment]:
    if sort == "oldest":
        return sorted(comments, key=lambda c: c.created_at)
    if sort == "top":
        return sorted(comments, key=lambda c: c.score, reverse=True)
    if sort == "controversial":
        return sorted(comments, key=lambda c: c.upvotes + c.downvotes, reverse=True)
    return sorted(comments, key=lambda c: c.created_at, reverse=True)
