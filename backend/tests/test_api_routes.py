"""
HTTP surface tests: authentication, role capabilities and error mapping.
"""

from telecom_ops.extensions import db
from telecom_ops.models import SessionToken

from conftest import auth_headers, get_auth_token


def test_health(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_login_and_me(client, advisor):
    token = get_auth_token(client, 'advisor')

    response = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['user']['username'] == 'advisor'
    assert 'CREATE_SALE' in body['permissions']
    assert 'VALIDATE_SALE' not in body['permissions']


def test_login_by_email(client, advisor):
    response = client.post('/api/auth/login', json={'email': advisor.email, 'password': 'Password123!'})
    assert response.status_code == 200


def test_bad_credentials(client, advisor):
    response = client.post('/api/auth/login', json={'username': 'advisor', 'password': 'wrong'})
    assert response.status_code == 401


def test_inactive_user_cannot_login(client, make_user):
    make_user('Advisor', username='onleave', status='On leave')
    response = client.post('/api/auth/login', json={'username': 'onleave', 'password': 'Password123!'})
    assert response.status_code == 401


def test_missing_and_invalid_token(client, db_session):
    assert client.get('/api/sales').status_code == 401
    response = client.get('/api/sales', headers={'Authorization': 'Bearer nope'})
    assert response.status_code == 401


def test_logout_revokes_token(client, advisor):
    token = get_auth_token(client, 'advisor')
    headers = {'Authorization': f'Bearer {token}'}

    assert client.post('/api/auth/logout', headers=headers).status_code == 200
    assert client.get('/api/auth/me', headers=headers).status_code == 401
    assert db.session.query(SessionToken).filter_by(is_revoked=True).count() == 1


def test_advisor_cannot_validate(client, advisor, make_article):
    art = make_article()
    headers = auth_headers(client, advisor)
    created = client.post('/api/sales', headers=headers, json={
        'client_name': 'Walk-in',
        'items': [{'article_id': art.id, 'quantity': 1}],
    })
    assert created.status_code == 201
    sale_id = created.get_json()['sale']['id']

    response = client.post(f'/api/sales/{sale_id}/validate', headers=headers)

    assert response.status_code == 403
    assert response.get_json()['required_permission'] == 'VALIDATE_SALE'


def test_sale_flow_over_http(client, advisor, agent, make_article):
    art = make_article(code='ART001', price_cents=159_000, stock=10)
    advisor_headers = auth_headers(client, advisor)
    agent_headers = auth_headers(client, agent)

    sale = client.post('/api/sales', headers=advisor_headers, json={'client_name': 'Walk-in'}).get_json()['sale']
    added = client.post(f"/api/sales/{sale['id']}/items", headers=advisor_headers,
                        json={'article_id': art.id, 'quantity': 3})
    assert added.status_code == 201
    assert added.get_json()['sale']['total_amount_cents'] == 477_000

    assert client.post(f"/api/sales/{sale['id']}/validate", headers=agent_headers).status_code == 200
    completed = client.post(f"/api/sales/{sale['id']}/complete", headers=agent_headers)
    assert completed.status_code == 200
    assert completed.get_json()['sale']['status'] == 'Completed'

    article = client.get(f'/api/articles/{art.id}', headers=advisor_headers).get_json()
    assert article['article']['stock_quantity'] == 7


def test_sale_error_mapping(client, advisor, make_article):
    art = make_article(stock=1)
    headers = auth_headers(client, advisor)
    sale_id = client.post('/api/sales', headers=headers, json={'client_name': 'Walk-in'}).get_json()['sale']['id']

    too_many = client.post(f'/api/sales/{sale_id}/items', headers=headers, json={'article_id': art.id, 'quantity': 2})
    assert too_many.status_code == 409
    body = too_many.get_json()
    assert body['code'] == 'INSUFFICIENT_STOCK'
    assert body['details'] == {'article_id': art.id, 'available': 1, 'requested': 2}

    bad_quantity = client.post(f'/api/sales/{sale_id}/items', headers=headers, json={'article_id': art.id, 'quantity': 0})
    assert bad_quantity.status_code == 400

    missing = client.get('/api/sales/99999', headers=headers)
    assert missing.status_code == 404
    assert missing.get_json()['code'] == 'SALE_NOT_FOUND'

    complete = client.post(f'/api/sales/{sale_id}/cancel', headers=headers, json={'reason': 'test'})
    assert complete.status_code == 200
    again = client.post(f'/api/sales/{sale_id}/cancel', headers=headers)
    assert again.status_code == 409
    assert again.get_json()['code'] == 'INVALID_STATE_TRANSITION'


def test_cancel_reason_must_be_text(client, advisor):
    headers = auth_headers(client, advisor)
    sale_id = client.post('/api/sales', headers=headers, json={'client_name': 'Walk-in'}).get_json()['sale']['id']

    response = client.post(f'/api/sales/{sale_id}/cancel', headers=headers, json={'reason': 42})

    assert response.status_code == 400
    assert client.get(f'/api/sales/{sale_id}', headers=headers).get_json()['sale']['status'] == 'Draft'


def test_stock_adjustment_route(client, controller, advisor, make_article):
    art = make_article(stock=2)

    denied = client.patch(f'/api/articles/{art.id}/stock', headers=auth_headers(client, advisor),
                          json={'operation': 'add', 'quantity': 1})
    assert denied.status_code == 403

    headers = auth_headers(client, controller)
    over = client.patch(f'/api/articles/{art.id}/stock', headers=headers,
                        json={'operation': 'subtract', 'quantity': 5})
    assert over.status_code == 409

    ok = client.patch(f'/api/articles/{art.id}/stock', headers=headers,
                      json={'operation': 'add', 'quantity': 8})
    assert ok.status_code == 200
    assert ok.get_json()['article']['stock_quantity'] == 10


def test_anomaly_scan_route(client, controller, advisor):
    headers = auth_headers(client, controller)

    response = client.post(f'/api/advisors/{advisor.id}/check-suspicious', headers=headers, json={'days': 7})

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['checked_sales'] == 0
    assert client.post(f'/api/advisors/{advisor.id}/check-suspicious', headers=headers,
                       json={'days': -1}).status_code == 400
    assert client.post('/api/advisors/4242/check-suspicious', headers=headers).status_code == 404


def test_users_require_manage_users(client, director, controller):
    assert client.get('/api/users', headers=auth_headers(client, controller)).status_code == 403
    response = client.get('/api/users', headers=auth_headers(client, director))
    assert response.status_code == 200
