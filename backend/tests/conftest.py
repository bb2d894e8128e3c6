import os, sys, pytest
# Ensure backend directory is on path so 'chronicle' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from flask import Blueprint, abort, make_response, request
from sqlalchemy import delete
from chronicle import create_app, get_db
from chronicle.constants.actions import CREATE, DELETE, UPDATE
from chronicle.decorators.audit import audit_log
from chronicle.models.backup_settings import Base, BackupJobPolicy, BackupSettings
from chronicle.services.audit import AuditContext, AuditRecorder, EXTENSION_KEY, get_recorder
from chronicle.services.log_store import AppendOnlyLogStore

JWT_TEST_SECRET = 'chronicle-test-secret-key-0123456789abcdef'

# Stand-ins for the family-tree / CMS admin handlers that sit behind the audit decorator
admin_bp = Blueprint('test_admin', __name__)


@admin_bp.delete('/admin/persons/<id>')
@audit_log(DELETE, 'persons')
def delete_person(id):
    status = int(request.headers.get('X-Test-Status', 200))
    return {'success': status < 300, 'id': id}, status


@admin_bp.put('/admin/persons/<id>')
@audit_log(UPDATE, 'persons')
def update_person(id):
    resp = make_response({'id': id})
    resp.status_code = int(request.args.get('status', 200))
    return resp


@admin_bp.post('/admin/news')
@audit_log(CREATE, 'news', entity_id_key='id')
def create_news():
    data = request.get_json(silent=True) or {}
    if not data.get('title'):
        abort(400, description='title required')
    return {'id': 'n-1', 'title': data['title']}, 201


@admin_bp.delete('/admin/news/<id>')
@audit_log(DELETE, 'news')
def delete_news(id):
    raise RuntimeError('handler crashed')


@admin_bp.post('/admin/persons/bulk-delete')
def bulk_delete_persons():
    ids = (request.get_json(silent=True) or {}).get('ids', [])
    get_recorder().record_sensitive_operation(AuditContext.from_request(), 'BULK_DELETE', {'count': len(ids)})
    return {'deleted': len(ids)}


@pytest.fixture(scope='session', autouse=True)
def app_instance(tmp_path_factory):
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    log_dir = tmp_path_factory.mktemp('audit')
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': JWT_TEST_SECRET,
        'AUDIT_LOG_PATH': str(log_dir / 'audit.log'),
        'AUDIT_LOG_FSYNC': False,
    })
    app.register_blueprint(admin_bp)
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app

@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()

@pytest.fixture(autouse=True)
def empty_settings_document():
    # every test starts before the singleton document exists
    session = get_db()
    session.execute(delete(BackupJobPolicy))
    session.execute(delete(BackupSettings))
    session.commit()
    yield

@pytest.fixture()
def audit_path(app_instance, tmp_path):
    """Point the app's recorder at a fresh log file for the duration of a test."""
    path = tmp_path / 'audit.log'
    previous = app_instance.extensions[EXTENSION_KEY]
    app_instance.extensions[EXTENSION_KEY] = AuditRecorder(AppendOnlyLogStore(str(path), fsync=False))
    yield path
    app_instance.extensions[EXTENSION_KEY] = previous
