# Overview: WSGI entrypoint for Flask CLI and production servers.

from posdesk import create_app

app = create_app()
