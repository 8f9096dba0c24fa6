import logging

from dotenv import load_dotenv
from flask import Flask
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config, GateSettings
from .errors import register_error_handlers
from .models import db

load_dotenv()


def _configure_logging(level: str):
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('access_gate').setLevel(level)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config())
    if overrides:
        app.config.update(overrides)
    _configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    # read once; gates only ever see this frozen copy
    app.extensions['access_gate'] = GateSettings.from_config(app.config)
    if not app.extensions['access_gate'].owner_key:
        app.logger.warning('OWNER_KEY is not set; every admin request will be refused')

    db.init_app(app)
    Migrate(app, db)
    # Trust reverse proxy headers (Render/Heroku)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    with app.app_context():
        db.create_all()

    from .routes_api import bp as api_bp
    from .routes_admin import bp as admin_bp
    app.register_blueprint(api_bp, url_prefix='/api')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    @app.get('/health')
    def health():
        return {'ok': True}

    return app
