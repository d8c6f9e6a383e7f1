"""Thread/reply entities, their redacted views, and store outcomes."""

import enum
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

RECENT_THREAD_LIMIT = 10
REPLY_PREVIEW_LIMIT = 3
DELETED_TEXT = "[deleted]"
OBJECT_ID_LENGTH = 24


def new_object_id():
    """Return a fresh 24-character lowercase hex identifier."""
    return secrets.token_hex(OBJECT_ID_LENGTH // 2)


def utc_now():
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_timestamp(value):
    # Reply timestamps round-trip through JSONB as ISO strings.
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Outcome(enum.Enum):
    """Data outcomes of store operations that can miss."""

    UPDATED = "updated"
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    WRONG_PASSWORD = "wrong_password"


@dataclass
class Reply:
    id: str
    text: str
    created_on: datetime
    delete_password: str
    reported: bool = False

    def to_document(self):
        """Return the JSONB representation embedded in the thread row.

        :returns: Reply fields with ``created_on`` as an ISO 8601 string.
        :rtype: dict[str, object]
        """
        return {
            "id": self.id,
            "text": self.text,
            "created_on": self.created_on.isoformat(),
            "delete_password": self.delete_password,
            "reported": self.reported,
        }

    @classmethod
    def from_document(cls, document):
        return cls(
            id=document["id"],
            text=document["text"],
            created_on=_parse_timestamp(document["created_on"]),
            delete_password=document["delete_password"],
            reported=bool(document.get("reported", False)),
        )


@dataclass
class Thread:
    id: str
    board: str
    text: str
    created_on: datetime
    bumped_on: datetime
    delete_password: str
    reported: bool = False
    replies: list = field(default_factory=list)
    replycount: int = 0

    @classmethod
    def from_row(cls, row):
        """Build a thread from a ``threads`` row in ``THREAD_COLUMNS`` order.

        :param row: Tuple returned by the cursor.
        :type row: tuple
        :returns: Populated thread with parsed replies.
        :rtype: Thread
        """
        (thread_id, board, text, created_on, bumped_on,
         delete_password, reported, replies, replycount) = row
        return cls(
            id=thread_id,
            board=board,
            text=text,
            created_on=created_on,
            bumped_on=bumped_on,
            delete_password=delete_password,
            reported=bool(reported),
            replies=[Reply.from_document(doc) for doc in (replies or [])],
            replycount=replycount,
        )


@dataclass(frozen=True)
class ReplyView:
    """Client-facing reply without ``delete_password`` or ``reported``."""

    id: str
    text: str
    created_on: datetime

    @classmethod
    def from_reply(cls, reply):
        return cls(id=reply.id, text=reply.text, created_on=reply.created_on)

    def to_dict(self):
        return {
            "_id": self.id,
            "text": self.text,
            "created_on": self.created_on.isoformat(),
        }


@dataclass(frozen=True)
class ThreadView:
    """Client-facing thread without ``delete_password`` or ``reported``."""

    id: str
    board: str
    text: str
    created_on: datetime
    bumped_on: datetime
    replies: tuple
    replycount: int

    @classmethod
    def full(cls, thread):
        """Project a thread keeping every reply in insertion order."""
        return cls._project(thread, thread.replies)

    @classmethod
    def preview(cls, thread, reply_limit=REPLY_PREVIEW_LIMIT):
        """Project a thread keeping only its newest replies.

        :param thread: Thread to project.
        :type thread: Thread
        :param reply_limit: Maximum number of replies to keep.
        :type reply_limit: int
        :returns: Redacted thread with replies newest first.
        :rtype: ThreadView
        """
        newest = sorted(thread.replies, key=lambda reply: reply.created_on, reverse=True)
        return cls._project(thread, newest[:reply_limit])

    @classmethod
    def _project(cls, thread, replies):
        return cls(
            id=thread.id,
            board=thread.board,
            text=thread.text,
            created_on=thread.created_on,
            bumped_on=thread.bumped_on,
            replies=tuple(ReplyView.from_reply(reply) for reply in replies),
            replycount=thread.replycount,
        )

    def to_dict(self):
        return {
            "_id": self.id,
            "board": self.board,
            "text": self.text,
            "created_on": self.created_on.isoformat(),
            "bumped_on": self.bumped_on.isoformat(),
            "replies": [reply.to_dict() for reply in self.replies],
            "replycount": self.replycount,
        }


@dataclass(frozen=True)
class Found:
    """Successful lookup carrying the redacted thread."""

    thread: ThreadView
