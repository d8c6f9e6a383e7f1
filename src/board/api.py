"""Route handlers for board threads and replies."""

import re

import psycopg
from flask import Blueprint, Response, current_app, jsonify, request

from board.models import RECENT_THREAD_LIMIT, Outcome

bp = Blueprint('api', __name__)

_OBJECT_ID_RE = re.compile(r'[0-9a-fA-F]{24}')

MISSING_FIELDS = 'missing required fields'
INVALID_ID = 'invalid id'

# Driver and socket failures surface as a generic 500.
STORE_FAILURES = (psycopg.Error, OSError, RuntimeError)


class ValidationError(Exception):
    """Raised when a required field is absent or malformed."""


def _text(body, status=200):
    return Response(body, status=status, mimetype='text/plain')


def _store():
    return current_app.config['THREAD_STORE']


def _fields():
    """Merge request fields from query string, form body and JSON body."""
    data = request.args.to_dict()
    data.update(request.form.to_dict())
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        data.update(payload)
    return data


def _require(data, *names):
    """Return the named fields, raising when any is not a non-blank string.

    :param data: Merged request fields.
    :type data: dict
    :returns: Field values in the order requested.
    :rtype: list[str]
    :raises ValidationError: If a field is missing, blank, or a JSON
        number/list/object.
    """
    values = []
    for name in names:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(MISSING_FIELDS)
        values.append(value)
    return values


def _object_id(value):
    if not _OBJECT_ID_RE.fullmatch(value):
        raise ValidationError(INVALID_ID)
    return value.lower()


@bp.errorhandler(ValidationError)
def _validation_failed(exc):
    return _text(str(exc))


def _store_failed(exc):
    current_app.logger.exception('Thread store call failed: %s', exc)
    return _text('internal server error', 500)


for _failure in STORE_FAILURES:
    bp.register_error_handler(_failure, _store_failed)


@bp.route('/threads/<board>', methods=['POST'])
def create_thread(board):
    """Create a thread on ``board``."""
    text, delete_password = _require(_fields(), 'text', 'delete_password')
    _store().create_thread(board, text, delete_password)
    return _text('success')


@bp.route('/threads/<board>', methods=['GET'])
def list_threads(board):
    """Return the 10 most recently bumped threads with 3 replies each."""
    threads = _store().list_recent_threads(board, RECENT_THREAD_LIMIT)
    return jsonify([thread.to_dict() for thread in threads])


@bp.route('/threads/<board>', methods=['PUT'])
def report_thread(board):
    (thread_id,) = _require(_fields(), 'thread_id')
    outcome = _store().report_thread(_object_id(thread_id))
    if outcome is Outcome.NOT_FOUND:
        return _text('not found')
    return _text('reported')


@bp.route('/threads/<board>', methods=['DELETE'])
def delete_thread(board):
    """Delete a thread when the password matches.

    A missing thread answers ``incorrect password`` as well, so callers
    cannot tell which ids exist.
    """
    thread_id, delete_password = _require(_fields(), 'thread_id', 'delete_password')
    outcome = _store().delete_thread(_object_id(thread_id), delete_password)
    if outcome is Outcome.DELETED:
        return _text('success')
    return _text('incorrect password')


@bp.route('/replies/<board>', methods=['POST'])
def create_reply(board):
    """Append a reply to a thread and bump it."""
    thread_id, text, delete_password = _require(
        _fields(), 'thread_id', 'text', 'delete_password'
    )
    result = _store().add_reply(_object_id(thread_id), text, delete_password)
    if result is Outcome.NOT_FOUND:
        return _text('thread not found')
    return _text('success')


@bp.route('/replies/<board>', methods=['GET'])
def show_thread(board):
    """Return one thread with every reply."""
    (thread_id,) = _require(request.args, 'thread_id')
    result = _store().get_thread(_object_id(thread_id))
    if result is Outcome.NOT_FOUND:
        return _text('not found')
    return jsonify(result.thread.to_dict())


@bp.route('/replies/<board>', methods=['PUT'])
def report_reply(board):
    thread_id, reply_id = _require(_fields(), 'thread_id', 'reply_id')
    outcome = _store().report_reply(_object_id(thread_id), _object_id(reply_id))
    if outcome is Outcome.NOT_FOUND:
        return _text('not found')
    return _text('reported')


@bp.route('/replies/<board>', methods=['DELETE'])
def delete_reply(board):
    thread_id, reply_id, delete_password = _require(
        _fields(), 'thread_id', 'reply_id', 'delete_password'
    )
    outcome = _store().delete_reply(
        _object_id(thread_id), _object_id(reply_id), delete_password
    )
    if outcome is Outcome.UPDATED:
        return _text('success')
    return _text('incorrect password')
