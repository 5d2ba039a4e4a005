import json
import pytest


def test_list_aggregations(client):
    response = client.get('/aggregations')

    assert response.status_code == 200
    data = json.loads(response.data)
    assert [a['value'] for a in data['data']] == ['average', 'median', 'sum', 'integration', 'min', 'max']
    assert data['data'][4]['label'] == 'Minimum'


def test_validate_against_machine(client):
    response = client.post('/formulas/validate', json={
        'formula': 'spindleSpeed * 0.8',
        'machineId': 'cnc'
    })

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['data'] == {'isValid': True, 'error': None}


def test_validate_unknown_variable_for_machine(client):
    """Switching machine changes the known variable set."""
    response = client.post('/formulas/validate', json={
        'formula': 'spindleSpeed * 0.8',
        'machineId': 'injection'
    })

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['data']['isValid'] is False
    assert data['data']['error'] == 'Unknown variable(s): spindleSpeed'


def test_validate_with_explicit_variables(client):
    response = client.post('/formulas/validate', json={
        'formula': 'a + b',
        'variables': ['a']
    })

    data = json.loads(response.data)
    assert data['data']['isValid'] is False
    assert 'b' in data['data']['error']


def test_validate_empty_formula(client):
    response = client.post('/formulas/validate', json={
        'formula': '',
        'variables': []
    })

    data = json.loads(response.data)
    assert data['data'] == {'isValid': False, 'error': 'Formula cannot be empty'}


def test_validate_missing_variable_source(client):
    response = client.post('/formulas/validate', json={'formula': 'a'})

    assert response.status_code == 400
    assert 'machineId' in json.loads(response.data)['error']


def test_validate_unknown_machine(client):
    response = client.post('/formulas/validate', json={'formula': 'a', 'machineId': 'lathe'})

    assert response.status_code == 404


def test_validate_requires_body(client):
    response = client.post('/formulas/validate')

    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Request body required'


def test_evaluate_over_generated_rows(client):
    response = client.post('/formulas/evaluate', json={
        'formula': 'spindleSpeed * 0 + 2',
        'machineId': 'cnc',
        'count': 10,
        'aggregationType': 'sum'
    })

    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['isValid'] is True
    assert data['values'] == [2] * 10
    assert len(data['timestamps']) == 10
    assert data['aggregate'] == 20
    assert data['aggregationType'] == 'sum'


def test_evaluate_default_aggregation(client):
    response = client.post('/formulas/evaluate', json={
        'formula': 'feedRate',
        'machineId': 'cnc',
        'count': 4
    })

    data = json.loads(response.data)['data']
    assert data['aggregationType'] == 'average'
    assert data['aggregate'] == pytest.approx(sum(data['values']) / 4)


def test_evaluate_non_finite_values_become_null(client):
    response = client.post('/formulas/evaluate', json={
        'formula': 'feedRate / 0',
        'machineId': 'cnc',
        'count': 2
    })

    data = json.loads(response.data)['data']
    assert data['isValid'] is True
    assert data['values'] == [None, None]


def test_evaluate_invalid_formula_is_structured(client):
    response = client.post('/formulas/evaluate', json={
        'formula': 'feedRate +',
        'machineId': 'cnc'
    })

    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['isValid'] is False
    assert 'Unexpected end of formula' in data['error']


def test_evaluate_rejects_unknown_aggregation(client):
    response = client.post('/formulas/evaluate', json={
        'formula': 'feedRate',
        'machineId': 'cnc',
        'aggregationType': 'mode'
    })

    assert response.status_code == 400
    assert 'aggregationType' in json.loads(response.data)['error']


def test_evaluate_unknown_machine(client):
    response = client.post('/formulas/evaluate', json={'formula': 'a', 'machineId': 'lathe'})

    assert response.status_code == 404


def test_validate_deeply_nested_formula(client):
    response = client.post('/formulas/validate', json={
        'formula': ' + '.join(['feedRate'] * 5000),
        'machineId': 'cnc'
    })

    assert response.status_code == 200
    data = json.loads(response.data)['data']
    assert data['isValid'] is False
    assert data['error'] == 'Formula is too deeply nested'


def test_validate_reports_syntax_error_position(client):
    response = client.post('/formulas/validate', json={
        'formula': 'feedRate # 2',
        'machineId': 'cnc'
    })

    data = json.loads(response.data)['data']
    assert data['isValid'] is False
    assert data['position'] == 9
