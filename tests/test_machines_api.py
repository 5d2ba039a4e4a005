import json


def test_list_machines(client):
    """Test catalog listing."""
    response = client.get('/machines')

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['error'] is None
    assert [m['id'] for m in data['data']] == ['cnc', 'injection', 'packaging']

    spindle = data['data'][0]['variables'][0]
    assert spindle == {
        'name': 'spindleSpeed',
        'displayName': 'Spindle Speed',
        'unit': 'RPM',
        'helpText': 'Controls cutting accuracy',
    }


def test_get_machine(client):
    response = client.get('/machines/packaging')

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['data']['name'] == 'Packaging Machine'
    assert len(data['data']['variables']) == 4


def test_get_unknown_machine(client):
    response = client.get('/machines/lathe')

    assert response.status_code == 404
    data = json.loads(response.data)
    assert data['error'] == 'Machine not found'


def test_machine_data_success(client):
    """Test row generation returns a bare array with the catalog keys."""
    response = client.get('/machines/cnc/data?count=5')

    assert response.status_code == 200
    rows = json.loads(response.data)
    assert isinstance(rows, list)
    assert len(rows) == 5
    assert set(rows[0]) == {
        'timestamp', 'spindleSpeed', 'toolVibration', 'feedRate',
        'coolantFlowRate', 'powerConsumption',
    }


def test_machine_data_default_count(client):
    response = client.get('/machines/injection/data')

    assert response.status_code == 200
    assert len(json.loads(response.data)) == 100


def test_machine_data_unparsable_count(client):
    response = client.get('/machines/injection/data?count=lots')

    assert response.status_code == 200
    assert len(json.loads(response.data)) == 100


def test_machine_data_count_reads_leading_digits(client):
    assert len(json.loads(client.get('/machines/cnc/data?count=1_000').data)) == 1
    assert len(json.loads(client.get('/machines/cnc/data?count=12abc').data)) == 12
    assert len(json.loads(client.get('/machines/cnc/data?count=%2B5').data)) == 5


def test_machine_data_count_is_clamped(app, client):
    app.config['DATA'].max_row_count = 20

    assert len(json.loads(client.get('/machines/cnc/data?count=500').data)) == 20
    assert json.loads(client.get('/machines/cnc/data?count=-3').data) == []


def test_machine_data_unknown_machine(client):
    response = client.get('/machines/lathe/data')

    assert response.status_code == 404
    assert json.loads(response.data) == {'error': 'Machine not found'}


def test_machine_data_internal_failure(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError('boom')

    monkeypatch.setattr('kpi_dashboard.routes.machines.generate_machine_data', explode)
    response = client.get('/machines/cnc/data')

    assert response.status_code == 500
    assert json.loads(response.data) == {'error': 'Failed to generate machine data'}


def test_test_data_success(client):
    response = client.get('/test-data?machineId=packaging&rowCount=3')

    assert response.status_code == 200
    rows = json.loads(response.data)
    assert len(rows) == 3
    assert set(rows[0]) == {
        'timestamp', 'conveyorSpeed', 'sensorTriggerCount', 'motorCurrent', 'packageCount',
    }


def test_test_data_default_row_count(client):
    response = client.get('/test-data?machineId=cnc')

    assert response.status_code == 200
    assert len(json.loads(response.data)) == 100


def test_test_data_missing_machine_id(client):
    response = client.get('/test-data')

    assert response.status_code == 400
    assert json.loads(response.data) == {'error': 'Missing machineId parameter'}


def test_test_data_unknown_machine(client):
    response = client.get('/test-data?machineId=lathe')

    assert response.status_code == 404
    assert json.loads(response.data) == {'error': 'Machine with ID lathe not found'}


def test_test_data_internal_failure(client, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError('boom')

    monkeypatch.setattr('kpi_dashboard.routes.machines.generate_machine_data', explode)
    response = client.get('/test-data?machineId=cnc')

    assert response.status_code == 500
    assert json.loads(response.data) == {'error': 'Failed to generate test data'}


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['data']['status'] == 'healthy'
    assert data['data']['kpi_count'] == 0


def test_unknown_route(client):
    response = client.get('/does-not-exist')

    assert response.status_code == 404
    assert json.loads(response.data)['error'] == 'Resource not found'
