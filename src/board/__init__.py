"""Flask application factory for the message board API."""

from flask import Flask, Response

from board import api
from board.store import ThreadStore

_SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Access-Control-Allow-Origin': '*',
}


def _not_found(_exc):
    return Response('Not Found', status=404, mimetype='text/plain')


def _harden(response):
    for header, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


def create_app(*, test_config=None, thread_store=None):
    """Create and configure the Flask application.

    :param test_config: Optional config dictionary applied after app creation.
    :type test_config: dict | None
    :param thread_store: Optional store override; a PostgreSQL-backed
        :class:`~board.store.ThreadStore` is built from ``db_config`` otherwise.
    :type thread_store: object | None
    :returns: Configured Flask app instance.
    :rtype: flask.Flask
    """
    app = Flask(__name__)
    if test_config:
        app.config.update(test_config)
    if thread_store is None:
        thread_store = app.config.get('THREAD_STORE') or ThreadStore()
    app.config['THREAD_STORE'] = thread_store

    app.register_blueprint(api.bp)
    app.register_error_handler(404, _not_found)
    # A known path with an unsupported method is still an unmatched route.
    app.register_error_handler(405, _not_found)
    app.after_request(_harden)
    return app
