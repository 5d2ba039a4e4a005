import json


def _create(client, payload):
    response = client.post('/kpis', json=payload)
    assert response.status_code == 201
    return json.loads(response.data)['data']


def test_create_kpi(client, kpi_payload):
    """Test a valid KPI is saved with defaults filled in."""
    kpi = _create(client, kpi_payload)

    assert kpi['id']
    assert kpi['name'] == 'Power per feed'
    assert kpi['machineId'] == 'cnc'
    assert kpi['chartType'] == 'line'
    assert kpi['createdAt'] == kpi['updatedAt']
    assert 'thresholds' not in kpi


def test_create_kpi_with_thresholds(client, kpi_payload):
    kpi_payload.update({'chartType': 'bar', 'thresholds': {'target': 0.4, 'critical': 0.8}})
    kpi = _create(client, kpi_payload)

    assert kpi['chartType'] == 'bar'
    assert kpi['thresholds'] == {'target': 0.4, 'critical': 0.8}


def test_create_kpi_invalid_formula_blocks_save(client, store, kpi_payload):
    kpi_payload['formula'] = 'powerConsumption / cycleTime'
    response = client.post('/kpis', json=kpi_payload)

    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Unknown variable(s): cycleTime'
    assert store.list_all() == []


def test_create_kpi_empty_formula(client, kpi_payload):
    kpi_payload['formula'] = '   '
    response = client.post('/kpis', json=kpi_payload)

    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Formula cannot be empty'


def test_create_kpi_missing_fields(client):
    response = client.post('/kpis', json={'name': 'Incomplete'})

    assert response.status_code == 400
    error = json.loads(response.data)['error']
    assert 'machineId' in error
    assert 'aggregationType' in error


def test_create_kpi_unknown_machine(client, kpi_payload):
    kpi_payload['machineId'] = 'lathe'
    response = client.post('/kpis', json=kpi_payload)

    assert response.status_code == 404


def test_create_kpi_requires_body(client):
    response = client.post('/kpis')

    assert response.status_code == 400


def test_list_and_get_kpi(client, kpi_payload):
    created = _create(client, kpi_payload)

    listing = json.loads(client.get('/kpis').data)['data']
    assert [k['id'] for k in listing] == [created['id']]

    response = client.get(f"/kpis/{created['id']}")
    assert response.status_code == 200
    assert json.loads(response.data)['data'] == created


def test_get_unknown_kpi(client):
    response = client.get('/kpis/missing')

    assert response.status_code == 404
    assert json.loads(response.data)['error'] == 'KPI with ID missing not found'


def test_update_kpi(client, kpi_payload):
    created = _create(client, kpi_payload)

    response = client.patch(f"/kpis/{created['id']}", json={
        'name': 'Renamed',
        'aggregationType': 'max'
    })

    assert response.status_code == 200
    updated = json.loads(response.data)['data']
    assert updated['name'] == 'Renamed'
    assert updated['aggregationType'] == 'max'
    assert updated['formula'] == created['formula']
    assert updated['createdAt'] == created['createdAt']
    assert updated['updatedAt'] >= created['updatedAt']


def test_update_kpi_revalidates_formula_for_new_machine(client, kpi_payload):
    created = _create(client, kpi_payload)

    response = client.put(f"/kpis/{created['id']}", json={'machineId': 'injection'})

    assert response.status_code == 400
    assert 'powerConsumption' in json.loads(response.data)['error']


def test_update_kpi_machine_and_formula_together(client, kpi_payload):
    created = _create(client, kpi_payload)

    response = client.put(f"/kpis/{created['id']}", json={
        'machineId': 'injection',
        'formula': 'clampingForce / cycleTime'
    })

    assert response.status_code == 200
    assert json.loads(response.data)['data']['machineId'] == 'injection'


def test_update_kpi_rejects_id_change(client, kpi_payload):
    created = _create(client, kpi_payload)

    response = client.patch(f"/kpis/{created['id']}", json={'id': 'hijack'})

    assert response.status_code == 400


def test_update_unknown_kpi(client):
    response = client.patch('/kpis/missing', json={'name': 'x'})

    assert response.status_code == 404


def test_delete_kpi(client, kpi_payload):
    created = _create(client, kpi_payload)

    response = client.delete(f"/kpis/{created['id']}")
    assert response.status_code == 200
    assert json.loads(response.data)['data'] == {'id': created['id'], 'deleted': True}

    assert client.get(f"/kpis/{created['id']}").status_code == 404
    assert client.delete(f"/kpis/{created['id']}").status_code == 404


def test_evaluate_saved_kpi(client):
    created = _create(client, {
        'name': 'Constant',
        'machineId': 'packaging',
        'formula': 'motorCurrent * 0 + 5',
        'aggregationType': 'sum',
        'thresholds': {'target': 10, 'warning': 6}
    })

    response = client.get(f"/kpis/{created['id']}/evaluate?count=4")

    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['isValid'] is True
    assert data['kpiId'] == created['id']
    assert data['values'] == [5, 5, 5, 5]
    assert data['aggregate'] == 20
    assert data['status'] == ['warning'] * 4
    assert data['aggregateStatus'] == 'normal'
    assert data['thresholds'] == {'target': 10, 'warning': 6}


def test_evaluate_unknown_kpi(client):
    response = client.get('/kpis/missing/evaluate')

    assert response.status_code == 404
