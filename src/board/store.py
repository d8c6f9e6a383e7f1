"""PostgreSQL-backed thread store.

Threads live in a single ``threads`` table; replies are embedded in each row
as a JSONB array. Every operation runs exactly one SQL statement so that
appends, reports and password-gated deletes never race with each other.
"""

import psycopg
from psycopg.types.json import Jsonb

from db_config import get_db_conn_info
from board.models import (
    DELETED_TEXT,
    RECENT_THREAD_LIMIT,
    Found,
    Outcome,
    Reply,
    Thread,
    ThreadView,
    new_object_id,
    utc_now,
)

THREAD_COLUMNS = (
    "id, board, text, created_on, bumped_on, "
    "delete_password, reported, replies, replycount"
)

CREATE_THREADS_TABLE = """
    CREATE TABLE IF NOT EXISTS threads (
        id TEXT PRIMARY KEY,
        board TEXT NOT NULL,
        text TEXT NOT NULL,
        created_on TIMESTAMPTZ NOT NULL,
        bumped_on TIMESTAMPTZ NOT NULL,
        delete_password TEXT NOT NULL,
        reported BOOLEAN NOT NULL DEFAULT FALSE,
        replies JSONB NOT NULL DEFAULT '[]'::jsonb,
        replycount INTEGER NOT NULL DEFAULT 0
    );
"""

CREATE_RECENCY_INDEX = """
    CREATE INDEX IF NOT EXISTS threads_board_bumped_on_idx
    ON threads (board, bumped_on DESC);
"""

_INSERT_THREAD = f"""
    INSERT INTO threads ({THREAD_COLUMNS})
    VALUES (%(id)s, %(board)s, %(text)s, %(created_on)s, %(bumped_on)s,
            %(delete_password)s, FALSE, %(replies)s, 0)
    RETURNING {THREAD_COLUMNS};
"""

_SELECT_RECENT = f"""
    SELECT {THREAD_COLUMNS}
    FROM threads
    WHERE board = %(board)s
    ORDER BY bumped_on DESC
    LIMIT %(limit)s;
"""

_SELECT_THREAD = f"""
    SELECT {THREAD_COLUMNS}
    FROM threads
    WHERE id = %(thread_id)s;
"""

_REPORT_THREAD = """
    UPDATE threads
    SET reported = TRUE
    WHERE id = %(thread_id)s
    RETURNING id;
"""

# Returns (thread_found, thread_deleted).
_DELETE_THREAD = """
    WITH target AS (
        SELECT id, delete_password = %(delete_password)s AS password_ok
        FROM threads
        WHERE id = %(thread_id)s
        FOR UPDATE
    ),
    removed AS (
        DELETE FROM threads
        USING target
        WHERE threads.id = target.id AND target.password_ok
        RETURNING threads.id
    )
    SELECT EXISTS (SELECT 1 FROM target), EXISTS (SELECT 1 FROM removed);
"""

# The stamp is computed from the locked row so bumped_on only moves forward
# and array order matches created_on order under concurrent replies.
_REPLY_STAMP = "GREATEST(bumped_on + INTERVAL '1 microsecond', %(now)s)"

_ADD_REPLY = f"""
    UPDATE threads
    SET replies = replies || jsonb_build_array(
            %(reply)s || jsonb_build_object('created_on', {_REPLY_STAMP})
        ),
        bumped_on = {_REPLY_STAMP},
        replycount = replycount + 1
    WHERE id = %(thread_id)s
    RETURNING {THREAD_COLUMNS};
"""

# Rebuilds the replies array in insertion order, patching only the match.
_PATCHED_REPLIES = """
    (
        SELECT jsonb_agg(
            CASE WHEN reply ->> 'id' = %(reply_id)s THEN reply || %(patch)s ELSE reply END
            ORDER BY position
        )
        FROM jsonb_array_elements(threads.replies) WITH ORDINALITY AS elements(reply, position)
    )
"""

_REPORT_REPLY = f"""
    UPDATE threads
    SET replies = {_PATCHED_REPLIES}
    WHERE id = %(thread_id)s AND replies @> %(reply_match)s
    RETURNING id;
"""

# Returns (reply_found, reply_updated).
_DELETE_REPLY = f"""
    WITH target AS (
        SELECT id,
               replies @> %(reply_match)s AS has_reply,
               replies @> %(password_match)s AS password_ok
        FROM threads
        WHERE id = %(thread_id)s
        FOR UPDATE
    ),
    updated AS (
        UPDATE threads
        SET replies = {_PATCHED_REPLIES}
        FROM target
        WHERE threads.id = target.id AND target.password_ok
        RETURNING threads.id
    )
    SELECT COALESCE((SELECT has_reply FROM target), FALSE),
           EXISTS (SELECT 1 FROM updated);
"""


class ThreadStore:
    """Create, query and update threads and their embedded replies.

    :param conninfo: psycopg connection string; defaults to ``db_config``.
    :type conninfo: str | None
    :param connect: Connection factory, ``psycopg.connect`` by default.
    :type connect: collections.abc.Callable
    :param id_factory: Callable returning new thread/reply identifiers.
    :type id_factory: collections.abc.Callable
    :param clock: Callable returning the current aware datetime.
    :type clock: collections.abc.Callable
    """

    def __init__(self, conninfo=None, *, connect=psycopg.connect,
                 id_factory=new_object_id, clock=utc_now):
        self._conninfo = conninfo if conninfo is not None else get_db_conn_info()
        self._connect = connect
        self._new_id = id_factory
        self._now = clock

    def _fetchone(self, query, params):
        with self._connect(self._conninfo) as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchone()

    def _fetchall(self, query, params):
        with self._connect(self._conninfo) as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def create_schema(self):
        """Create the ``threads`` table and its recency index if missing."""
        with self._connect(self._conninfo) as conn:
            with conn.cursor() as cur:
                cur.execute(CREATE_THREADS_TABLE)
                cur.execute(CREATE_RECENCY_INDEX)

    def create_thread(self, board, text, delete_password):
        """Persist a new thread on ``board``.

        :returns: Stored thread including its generated id.
        :rtype: board.models.Thread
        """
        now = self._now()
        row = self._fetchone(_INSERT_THREAD, {
            "id": self._new_id(),
            "board": board,
            "text": text,
            "created_on": now,
            "bumped_on": now,
            "delete_password": delete_password,
            "replies": Jsonb([]),
        })
        return Thread.from_row(row)

    def list_recent_threads(self, board, limit=RECENT_THREAD_LIMIT):
        """Return the most recently bumped threads of ``board``.

        Each thread keeps only its newest replies and is redacted.

        :param board: Board name.
        :type board: str
        :param limit: Maximum number of threads.
        :type limit: int
        :returns: Thread previews, most recently bumped first.
        :rtype: list[board.models.ThreadView]
        """
        rows = self._fetchall(_SELECT_RECENT, {"board": board, "limit": limit})
        return [ThreadView.preview(Thread.from_row(row)) for row in rows]

    def get_thread(self, thread_id):
        """Return ``Found`` with every reply, or ``Outcome.NOT_FOUND``."""
        row = self._fetchone(_SELECT_THREAD, {"thread_id": thread_id})
        if row is None:
            return Outcome.NOT_FOUND
        return Found(ThreadView.full(Thread.from_row(row)))

    def report_thread(self, thread_id):
        row = self._fetchone(_REPORT_THREAD, {"thread_id": thread_id})
        return Outcome.UPDATED if row else Outcome.NOT_FOUND

    def delete_thread(self, thread_id, delete_password):
        """Delete a thread when ``delete_password`` matches exactly.

        :returns: ``DELETED``, ``WRONG_PASSWORD`` or ``NOT_FOUND``.
        :rtype: board.models.Outcome
        """
        found, deleted = self._fetchone(_DELETE_THREAD, {
            "thread_id": thread_id,
            "delete_password": delete_password,
        })
        if deleted:
            return Outcome.DELETED
        return Outcome.WRONG_PASSWORD if found else Outcome.NOT_FOUND

    def add_reply(self, thread_id, text, delete_password):
        """Append a reply, bump the thread and increment its reply count.

        The reply's ``created_on`` and the thread's ``bumped_on`` are the
        later of the clock reading and one microsecond past the previous bump.

        :returns: ``Found`` with the updated thread, or ``Outcome.NOT_FOUND``.
        :rtype: board.models.Found | board.models.Outcome
        """
        now = self._now()
        reply = Reply(
            id=self._new_id(),
            text=text,
            created_on=now,
            delete_password=delete_password,
        )
        row = self._fetchone(_ADD_REPLY, {
            "thread_id": thread_id,
            "reply": Jsonb(reply.to_document()),
            "now": now,
        })
        if row is None:
            return Outcome.NOT_FOUND
        return Found(ThreadView.full(Thread.from_row(row)))

    def report_reply(self, thread_id, reply_id):
        row = self._fetchone(_REPORT_REPLY, {
            "thread_id": thread_id,
            "reply_id": reply_id,
            "reply_match": Jsonb([{"id": reply_id}]),
            "patch": Jsonb({"reported": True}),
        })
        return Outcome.UPDATED if row else Outcome.NOT_FOUND

    def delete_reply(self, thread_id, reply_id, delete_password):
        """Soft-delete a reply by replacing its text with ``[deleted]``.

        The id and password must match on the same reply.

        :returns: ``UPDATED``, ``WRONG_PASSWORD`` or ``NOT_FOUND``.
        :rtype: board.models.Outcome
        """
        found, updated = self._fetchone(_DELETE_REPLY, {
            "thread_id": thread_id,
            "reply_id": reply_id,
            "reply_match": Jsonb([{"id": reply_id}]),
            "password_match": Jsonb([{"id": reply_id, "delete_password": delete_password}]),
            "patch": Jsonb({"text": DELETED_TEXT}),
        })
        if updated:
            return Outcome.UPDATED
        return Outcome.WRONG_PASSWORD if found else Outcome.NOT_FOUND
