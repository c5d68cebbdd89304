"""WSGI entrypoint used by Gunicorn.

Run: `gunicorn -b 0.0.0.0:5000 wsgi:app`

Each worker process keeps its own in-memory blocklist and refresh thread.
"""

from app import app as app

# Common WSGI convention for other servers/tools.
application = app
