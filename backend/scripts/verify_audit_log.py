#!/usr/bin/env python
"""Check the audit log hash chain.

Usage:
    python backend/scripts/verify_audit_log.py                 # uses AUDIT_LOG_PATH
    python backend/scripts/verify_audit_log.py logs/audit.log
    python backend/scripts/verify_audit_log.py --json

Exit status is 1 when the chain is broken (a record was edited, removed or reordered).
"""
from __future__ import annotations
import os, sys, argparse, json

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from chronicle.services.log_store import verify_chain  # type: ignore


def main(argv=None):
    parser = argparse.ArgumentParser(description='Verify the audit log hash chain')
    parser.add_argument('path', nargs='?', default=os.getenv('AUDIT_LOG_PATH', os.path.join('logs', 'audit.log')))
    parser.add_argument('--json', action='store_true', help='machine readable output')
    args = parser.parse_args(argv)

    report = verify_chain(args.path)
    if args.json:
        print(json.dumps({'path': args.path, 'ok': report.ok, 'total': report.total,
                          'skipped': report.skipped, 'broken_at': report.broken_at}))
    elif report.ok:
        print(f"{args.path}: {report.total} records, chain intact ({report.skipped} unreadable lines skipped)")
    else:
        print(f"{args.path}: chain broken at record {report.broken_at} of {report.total}")
    return 0 if report.ok else 1


if __name__ == '__main__':
    sys.exit(main())
