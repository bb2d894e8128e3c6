import itertools
from datetime import datetime, timedelta, timezone
import pytest
from chronicle.constants.actions import LOGIN_FAILED, LOGIN_SUCCESS, SYSTEM_USER
from chronicle.services.audit import AuditContext, AuditRecorder
from chronicle.services.log_store import AppendOnlyLogStore, read_records
from chronicle.services.policy import Principal


@pytest.fixture()
def recorder(tmp_path):
    return AuditRecorder(AppendOnlyLogStore(str(tmp_path / 'audit.log'), fsync=False))


def _records(recorder):
    return list(read_records(recorder.store.path))


@pytest.mark.parametrize('username,success,reason', list(itertools.product(
    ['alice', None], [True, False], [None, 'Invalid password'])))
def test_auth_attempts_always_produce_one_record(recorder, username, success, reason):
    recorder.record_auth_attempt(username, success, '10.0.0.1', 'pytest-agent', reason)
    records = _records(recorder)
    assert len(records) == 1
    rec = records[0]
    assert rec['action'] == (LOGIN_SUCCESS if success else LOGIN_FAILED)
    assert rec['resource'] == 'auth'
    assert rec['user'] == (username or 'anonymous')
    assert rec['ip'] == '10.0.0.1'
    assert 'statusCode' not in rec and 'method' not in rec
    if reason and not success:
        assert rec['details'] == {'reason': reason}
    else:
        assert rec['details'] is None


def test_admin_action_only_for_success_status(recorder):
    ctx = dict(principal=Principal('alice'), ip='1.2.3.4', method='DELETE',
               path='/admin/persons/42', path_params={'id': '42'})
    assert recorder.record_admin_action(AuditContext(status_code=403, **ctx), 'DELETE', 'persons') is None
    assert recorder.record_admin_action(AuditContext(status_code=302, **ctx), 'DELETE', 'persons') is None
    rec = recorder.record_admin_action(AuditContext(status_code=200, **ctx), 'DELETE', 'persons')
    assert rec is not None
    records = _records(recorder)
    assert len(records) == 1
    assert records[0]['resourceId'] == '42'
    assert records[0]['statusCode'] == 200
    assert records[0]['user'] == 'alice'


def test_sensitive_operation_is_unconditional(recorder):
    ctx = AuditContext(principal=Principal(None), ip='1.2.3.4', status_code=500)
    recorder.record_sensitive_operation(ctx, 'PERMISSION_CHANGE', {'role': 'editor'})
    (rec,) = _records(recorder)
    assert rec['action'] == 'PERMISSION_CHANGE'
    assert rec['resource'] == 'sensitive'
    assert rec['user'] == 'anonymous'
    assert rec['details'] == {'role': 'editor'}


def test_system_events_are_attributed_to_system(recorder):
    recorder.record_system_event('BACKUP_CREATED', 'backup', details={'backupType': 'cms'}, resource_id='CMS_1')
    (rec,) = _records(recorder)
    assert rec['user'] == SYSTEM_USER
    assert rec['resourceId'] == 'CMS_1'


def test_timestamps_never_go_backwards(tmp_path):
    t = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    ticks = iter([t, t - timedelta(seconds=5), t + timedelta(seconds=1)])
    rec = AuditRecorder(AppendOnlyLogStore(str(tmp_path / 'a.log'), fsync=False), clock=lambda: next(ticks))
    for _ in range(3):
        rec.record_auth_attempt('bob', True)
    stamps = [r['timestamp'] for r in read_records(rec.store.path)]
    assert stamps == ['2024-01-01T12:00:00.000Z', '2024-01-01T12:00:00.000Z', '2024-01-01T12:00:01.000Z']


class _BrokenStore:
    path = '/dev/null'

    def append(self, record):
        raise RuntimeError('boom')


def test_recorder_swallows_store_errors():
    rec = AuditRecorder(_BrokenStore())
    assert rec.record_auth_attempt('alice', False, reason='Invalid password') is None


def test_recorder_returns_none_when_append_fails(tmp_path):
    rec = AuditRecorder(AppendOnlyLogStore(str(tmp_path), fsync=False))
    assert rec.record_auth_attempt('alice', True) is None


def test_principal_defaults_to_anonymous():
    assert Principal().name == 'anonymous'
    assert Principal('').is_anonymous
    assert Principal('carol').name == 'carol'
