import pytest
from kpi_dashboard import create_app
from kpi_dashboard.config import AppConfig
from kpi_dashboard.db import init_db, reset_db
from kpi_dashboard.services.kpi_store import KpiStore, MemoryStorage


@pytest.fixture(scope='function')
def app_config():
    """Config pointing at an in-memory SQLite database and memory-backed store."""
    config = AppConfig()
    config.database.url = 'sqlite://'
    config.kpi_store.backend = 'memory'
    config.log_level = 'WARNING'
    return config


@pytest.fixture(scope='function')
def storage():
    return MemoryStorage()


@pytest.fixture(scope='function')
def store(storage):
    """Fresh KPI store over an empty memory slot."""
    return KpiStore(storage)


@pytest.fixture(scope='function')
def app(app_config, store):
    """Create Flask test app with the store injected."""
    app = create_app(app_config, store=store)
    app.config['TESTING'] = True
    yield app
    reset_db()


@pytest.fixture(scope='function')
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def sql_db():
    """Fresh in-memory SQLite database behind kpi_dashboard.db."""
    init_db('sqlite://')
    yield
    reset_db()


@pytest.fixture
def constant_rows():
    """Three rows where a=1 and b=2."""
    return [
        {'timestamp': 1_000, 'a': 1.0, 'b': 2.0},
        {'timestamp': 61_000, 'a': 1.0, 'b': 2.0},
        {'timestamp': 121_000, 'a': 1.0, 'b': 2.0},
    ]


@pytest.fixture
def kpi_payload():
    return {
        'name': 'Power per feed',
        'machineId': 'cnc',
        'formula': 'powerConsumption / feedRate',
        'aggregationType': 'average',
    }
