import logging
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect
from config import Config
from classbook.results import BackendUnavailable

csrf = CSRFProtect()

BACKEND_EXTENSION = 'classbook_backend'


def create_app(config_class=Config, backend=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    csrf.init_app(app)

    # Resolve Firestore backend
    if backend is None:
        from classbook.firebase_init import init_backend
        backend = init_backend(app.config)
    app.extensions[BACKEND_EXTENSION] = backend
    if not backend.available:
        app.logger.warning('Starting without Firestore: %s', backend.reason)

    @app.errorhandler(BackendUnavailable)
    def backend_unavailable(err):
        return jsonify({'ok': False, 'reason': f'backend unavailable: {err}'}), 503

    # Register blueprints
    from classbook.routes import api, main
    app.register_blueprint(api.bp)
    app.register_blueprint(main.bp)

    return app
