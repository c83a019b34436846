"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

First start:

    flask --app run.py db upgrade        (or db init / migrate on a fresh checkout)
    flask --app run.py seed-defaults
    flask --app run.py create-admin
"""

from orderflow import create_app

# WSGI application object; `flask run` and WSGI servers look for `app`.
app = create_app()

if __name__ == "__main__":
    # Direct `python run.py` usage is for development only.
    app.run(debug=True)
