import logging
import sys
from flask import Flask, jsonify
from flask_cors import CORS
from kpi_dashboard.config import AppConfig, load_config
from kpi_dashboard.db import init_db
from kpi_dashboard.services.kpi_store import KpiStore, MemoryStorage, SqlStorage


def setup_logging(log_level: str, log_format: str) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == 'json':
        import json

        class JsonFormatter(logging.Formatter):
            def format(self, record):
                log_data = {
                    'timestamp': self.formatTime(record),
                    'level': record.levelname,
                    'logger': record.name,
                    'message': record.getMessage(),
                }
                if record.exc_info:
                    log_data['exception'] = self.formatException(record.exc_info)
                return json.dumps(log_data)

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    logging.root.setLevel(level)
    logging.root.addHandler(handler)


def build_store(config: AppConfig) -> KpiStore:
    if config.kpi_store.backend == 'memory':
        backend = MemoryStorage()
    else:
        backend = SqlStorage()
    return KpiStore(backend, slot=config.kpi_store.slot)


def create_app(config: AppConfig | None = None, store: KpiStore | None = None) -> Flask:
    config = config or load_config()

    setup_logging(config.log_level, config.log_format)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.secret_key
    app.config['DATA'] = config.data

    CORS(app, origins=config.cors_origins)

    init_db(config.database.url)

    app.extensions['kpi_store'] = store if store is not None else build_store(config)

    from kpi_dashboard.routes.health import health_bp
    from kpi_dashboard.routes.machines import machines_bp
    from kpi_dashboard.routes.sample_data import sample_data_bp
    from kpi_dashboard.routes.formulas import formulas_bp
    from kpi_dashboard.routes.kpis import kpis_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(machines_bp)
    app.register_blueprint(sample_data_bp)
    app.register_blueprint(formulas_bp)
    app.register_blueprint(kpis_bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'data': None, 'error': 'Resource not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'data': None, 'error': 'Internal server error'}), 500

    return app
