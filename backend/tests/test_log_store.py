import json
import logging
import multiprocessing
import threading
from chronicle.services.log_store import AppendOnlyLogStore, GENESIS_HASH, read_records, verify_chain


def _lines(path):
    return path.read_text(encoding='utf-8').splitlines()


def test_append_writes_one_json_line_per_record(tmp_path):
    path = tmp_path / 'logs' / 'audit.log'
    store = AppendOnlyLogStore(str(path), fsync=False)
    assert store.append({'action': 'CREATE', 'resource': 'persons'}) is True
    assert store.append({'action': 'DELETE', 'resource': 'news'}) is True
    raw = path.read_text(encoding='utf-8')
    assert raw.endswith('\n')
    first, second = [json.loads(l) for l in _lines(path)]
    assert first['action'] == 'CREATE'
    assert first['prev'] == GENESIS_HASH
    assert second['prev'] == first['hash']
    assert [r['action'] for r in read_records(str(path))] == ['CREATE', 'DELETE']
    # chain fields are stripped unless asked for
    assert 'hash' not in next(read_records(str(path)))
    assert 'hash' in next(read_records(str(path), include_chain=True))


def test_concurrent_appends_never_interleave(tmp_path):
    path = tmp_path / 'audit.log'
    store = AppendOnlyLogStore(str(path), fsync=False)

    def worker(n):
        for i in range(25):
            store.append({'action': 'UPDATE', 'resource': 'persons', 'details': {'worker': n, 'i': i, 'pad': 'x' * 200}})

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    lines = _lines(path)
    assert len(lines) == 200
    for line in lines:
        json.loads(line)  # every line is a whole record
    report = verify_chain(str(path))
    assert report.ok and report.total == 200


def test_trailing_partial_line_is_ignored_and_terminated_on_resume(tmp_path):
    path = tmp_path / 'audit.log'
    AppendOnlyLogStore(str(path), fsync=False).append({'action': 'CREATE', 'resource': 'persons'})
    with open(path, 'a', encoding='utf-8') as fh:
        fh.write('{"action":"DELETE","resou')  # crash mid-write
    assert [r['action'] for r in read_records(str(path))] == ['CREATE']

    # a new process resumes the chain from the last complete record
    AppendOnlyLogStore(str(path), fsync=False).append({'action': 'UPDATE', 'resource': 'news'})
    assert [r['action'] for r in read_records(str(path))] == ['CREATE', 'UPDATE']
    report = verify_chain(str(path))
    assert report.ok
    assert report.total == 2
    assert report.skipped == 1


def test_two_writers_sharing_a_file_extend_one_chain(tmp_path):
    # e.g. two app workers plus the backup trigger script on the same AUDIT_LOG_PATH
    path = tmp_path / 'audit.log'
    first = AppendOnlyLogStore(str(path), fsync=False)
    second = AppendOnlyLogStore(str(path), fsync=False)
    for n, store in enumerate([first, second, first, second, second, first], start=1):
        assert store.append({'action': 'UPDATE', 'resource': 'persons', 'n': n})
    assert [r['n'] for r in read_records(str(path))] == [1, 2, 3, 4, 5, 6]
    report = verify_chain(str(path))
    assert report.ok
    assert report.total == 6


def _append_many(path, worker, count):
    store = AppendOnlyLogStore(path, fsync=False)
    for i in range(count):
        store.append({'action': 'DELETE', 'resource': 'persons', 'resourceId': f'{worker}-{i}'})


def test_separate_processes_extend_one_chain(tmp_path):
    path = str(tmp_path / 'audit.log')
    ctx = multiprocessing.get_context('fork')
    procs = [ctx.Process(target=_append_many, args=(path, w, 30)) for w in range(3)]
    for p in procs:
        p.start()
    for p in procs:
        p.join(timeout=30)
        assert p.exitcode == 0
    report = verify_chain(path)
    assert report.ok
    assert report.total == 90
    assert report.skipped == 0


def test_edited_record_breaks_chain(tmp_path):
    path = tmp_path / 'audit.log'
    store = AppendOnlyLogStore(str(path), fsync=False)
    for user in ('alice', 'bob', 'carol'):
        store.append({'action': 'DELETE', 'resource': 'persons', 'user': user})
    lines = _lines(path)
    tampered = json.loads(lines[1])
    tampered['user'] = 'mallory'
    lines[1] = json.dumps(tampered)
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    report = verify_chain(str(path))
    assert not report.ok
    assert report.broken_at == 2


def test_removed_record_breaks_chain(tmp_path):
    path = tmp_path / 'audit.log'
    store = AppendOnlyLogStore(str(path), fsync=False)
    for i in range(3):
        store.append({'action': 'CREATE', 'resource': 'news', 'resourceId': str(i)})
    lines = _lines(path)
    del lines[0]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    assert verify_chain(str(path)).broken_at == 1


def test_write_failure_is_reported_not_raised(tmp_path, caplog):
    # the target path is a directory, so every open() fails
    store = AppendOnlyLogStore(str(tmp_path), fsync=False)
    with caplog.at_level(logging.ERROR, logger='chronicle.services.log_store'):
        assert store.append({'action': 'CREATE', 'resource': 'persons'}) is False
    assert any('Failed to write audit log' in r.getMessage() for r in caplog.records)


def test_reading_missing_log_yields_nothing(tmp_path):
    path = tmp_path / 'absent.log'
    assert list(read_records(str(path))) == []
    assert verify_chain(str(path)).total == 0
