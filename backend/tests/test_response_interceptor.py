from flask import Response
from chronicle.decorators.audit import ResponseInterceptor
from chronicle.services.audit import AuditContext
from chronicle.services.policy import Principal
from tests.test_utils_seed import audit_entries, auth_headers


def test_successful_delete_produces_one_record(client, audit_path):
    resp = client.delete('/admin/persons/42', headers={'User-Agent': 'pytest-agent'})
    assert resp.status_code == 200
    entries = audit_entries(audit_path)
    assert len(entries) == 1
    rec = entries[0]
    assert rec['action'] == 'DELETE'
    assert rec['resource'] == 'persons'
    assert rec['resourceId'] == '42'
    assert rec['statusCode'] == 200
    assert rec['method'] == 'DELETE'
    assert rec['path'] == '/admin/persons/42'
    assert rec['user'] == 'anonymous'
    assert rec['userAgent'] == 'pytest-agent'
    assert rec['ip'] == '127.0.0.1'


def test_same_request_rejected_produces_no_record(client, audit_path):
    resp = client.delete('/admin/persons/42', headers={'X-Test-Status': '403'})
    assert resp.status_code == 403
    assert audit_entries(audit_path) == []


def test_authenticated_principal_is_recorded(app_instance, client, audit_path):
    headers = auth_headers(app_instance, perms=[], username='alice')
    resp = client.delete('/admin/persons/7', headers=headers)
    assert resp.status_code == 200
    (rec,) = audit_entries(audit_path)
    assert rec['user'] == 'alice'


def test_invalid_token_is_treated_as_anonymous(client, audit_path):
    resp = client.delete('/admin/persons/8', headers={'Authorization': 'Bearer not-a-token'})
    assert resp.status_code == 200
    (rec,) = audit_entries(audit_path)
    assert rec['user'] == 'anonymous'


def test_resource_id_falls_back_to_payload_key(client, audit_path):
    resp = client.post('/admin/news', json={'title': 'Olive harvest'})
    assert resp.status_code == 201
    (rec,) = audit_entries(audit_path)
    assert rec['action'] == 'CREATE'
    assert rec['resource'] == 'news'
    assert rec['resourceId'] == 'n-1'
    assert rec['statusCode'] == 201


def test_aborted_handler_produces_no_record(client, audit_path):
    resp = client.post('/admin/news', json={})
    assert resp.status_code == 400
    assert audit_entries(audit_path) == []


def test_crashing_handler_produces_no_record(client, audit_path):
    resp = client.delete('/admin/news/3')
    assert resp.status_code == 500
    assert audit_entries(audit_path) == []


def test_response_object_status_is_used(client, audit_path):
    assert client.put('/admin/persons/5?status=204').status_code == 204
    assert client.put('/admin/persons/5?status=302').status_code == 302
    entries = audit_entries(audit_path)
    assert [e['statusCode'] for e in entries] == [204]
    assert entries[0]['path'] == '/admin/persons/5?status=204'


def test_one_record_per_request(client, audit_path):
    for pid in ('1', '2', '3'):
        client.delete(f'/admin/persons/{pid}')
    assert [e['resourceId'] for e in audit_entries(audit_path)] == ['1', '2', '3']


def test_sensitive_operation_from_handler(client, audit_path):
    resp = client.post('/admin/persons/bulk-delete', json={'ids': [1, 2, 3]})
    assert resp.status_code == 200
    (rec,) = audit_entries(audit_path)
    assert rec['action'] == 'BULK_DELETE'
    assert rec['resource'] == 'sensitive'
    assert rec['details'] == {'count': 3}


def test_interceptor_finalizes_once(app_instance, audit_path):
    ctx = AuditContext(principal=Principal('alice'), method='DELETE', path='/admin/persons/9',
                       path_params={'id': '9'}, status_code=200)
    with app_instance.app_context():
        interceptor = ResponseInterceptor('DELETE', 'persons')
        interceptor.complete()
        response = Response('{}', status=200)
        assert interceptor.finalize(response, context=ctx) is response
        interceptor.finalize(response, context=ctx)
    assert len(audit_entries(audit_path)) == 1


def test_interceptor_skips_incomplete_handler(app_instance, audit_path):
    ctx = AuditContext(status_code=200, path_params={'id': '9'})
    with app_instance.app_context():
        interceptor = ResponseInterceptor('DELETE', 'persons')
        interceptor.finalize(Response('{}', status=200), context=ctx)
        # completing afterwards must not resurrect the hook
        interceptor.complete()
        interceptor.finalize(Response('{}', status=200), context=ctx)
    assert audit_entries(audit_path) == []
