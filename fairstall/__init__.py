import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv
from flask_wtf.csrf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logging.getLogger("fairstall").setLevel(level)
    app.logger.setLevel(level)


def create_app(test_config=None):
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object('config.Config')
    if test_config:
        app.config.update(test_config)

    _configure_logging(app)

    # app first, then the extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    from fairstall import models  # noqa: F401
    from fairstall.exporters import display_zone
    from fairstall.state import EXTENSION_KEY, PosState
    from fairstall.storage import build_storage

    display_zone(app.config.get("DISPLAY_TIMEZONE"))
    app.extensions[EXTENSION_KEY] = PosState(build_storage(app.config["STORAGE_BACKEND"]))

    from fairstall.routes import main_bp, api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)

    from fairstall.cli import register_commands
    register_commands(app)

    return app
