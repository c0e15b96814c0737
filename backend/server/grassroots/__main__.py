#!/usr/bin/env python3

import logging

import connexion
from flask_cors import CORS

from grassroots.controllers import config
from grassroots.controllers.helpers import plan_worker


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app():
    """Create and configure the Connexion/Flask application."""
    app = connexion.App(__name__, specification_dir='./openapi/')
    app.add_api('openapi.yaml',
                arguments={'title': 'Grassroots API'},
                pythonic_params=True)

    flask_app = app.app

    @flask_app.route('/health')
    def health():
        return {"status": "ok"}, 200

    # Enable CORS for all routes
    CORS(flask_app, resources={
        r"/.*": {
            "origins": config.CORS_ORIGINS,
            "methods": ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "X-Requested-With", "User-Agent"],
            "supports_credentials": True
        }
    })

    return app


def create_wsgi_app():
    """Factory function for gunicorn. Returns the Flask WSGI app."""
    configure_logging()
    app = create_app()
    plan_worker.start_worker()
    return app.app


def main():
    configure_logging()
    app = create_app()
    plan_worker.start_worker()
    app.run(port=8000, host='0.0.0.0')


if __name__ == '__main__':
    main()
