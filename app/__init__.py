from flask import Flask
from .extensions import db, migrate


def create_app(test_config=None):
    """Application factory.

    Workers and scripts build the app the same way the HTTP server does so
    that `current_app` and the Flask-SQLAlchemy session are available to
    services and job executors.
    """
    app = Flask(__name__)
    app.config.from_object('config.Config')
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    migrate.init_app(app, db)

    # register models on the metadata before migrations / create_all
    from . import models  # noqa: F401

    from .api import register_api
    register_api(app)

    @app.get('/healthz')
    def healthz():
        return {'ok': True}

    return app
