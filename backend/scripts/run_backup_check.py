#!/usr/bin/env python
"""Timer entry point for scheduled backups.

Usage:
    python backend/scripts/run_backup_check.py --executor mypkg.backups:executor
    python backend/scripts/run_backup_check.py --job cms                 # single job type
    python backend/scripts/run_backup_check.py --loop                    # check every BACKUP_CHECK_INTERVAL_MINUTES
    python backend/scripts/run_backup_check.py --claim mypkg.locks:claim_backup_run

The executor (and optional claim hook) are imported from ``module:attr`` paths, falling
back to the BACKUP_EXECUTOR / BACKUP_RUN_CLAIM settings. An executor attribute that is
a class or factory is called once to obtain the instance.
"""
from __future__ import annotations
import os, sys, argparse, logging, time, inspect
from werkzeug.utils import import_string

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from chronicle import create_app  # type: ignore
from chronicle.constants.actions import JOB_TYPES
from chronicle.jobs.backup_trigger import run_scheduler
from chronicle.services.audit import get_recorder
from chronicle.services.backup_settings import get_policy_store

logger = logging.getLogger('chronicle.backup_check')


def _load(path):
    obj = import_string(path.replace(':', '.'))
    if inspect.isclass(obj) or (callable(obj) and not hasattr(obj, 'run')):
        obj = obj()
    return obj


def main(argv=None):
    parser = argparse.ArgumentParser(description='Run due family-tree / CMS backups')
    parser.add_argument('--executor', help='module:attr of the backup executor')
    parser.add_argument('--claim', help='module:attr of a claim-before-run hook')
    parser.add_argument('--job', choices=JOB_TYPES, action='append', help='restrict to job type(s)')
    parser.add_argument('--loop', action='store_true', help='keep checking at the configured interval')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
    app = create_app()
    with app.app_context():
        executor_path = args.executor or app.config.get('BACKUP_EXECUTOR')
        if not executor_path:
            parser.error('no executor: pass --executor or set BACKUP_EXECUTOR')
        executor = _load(executor_path)
        claim_path = args.claim or app.config.get('BACKUP_RUN_CLAIM')
        claim = import_string(claim_path.replace(':', '.')) if claim_path else None
        job_types = args.job or JOB_TYPES
        period = app.config['BACKUP_CHECK_INTERVAL_MINUTES'] * 60

        while True:
            logger.info('Running backup check...')
            outcomes = run_scheduler(executor, get_policy_store(), get_recorder(), claim=claim, job_types=job_types)
            for o in outcomes:
                logger.info('%s: due=%s claimed=%s recorded=%s pruned=%d', o.job_type, o.due, o.claimed, o.recorded, o.pruned)
            if not args.loop:
                break
            time.sleep(period)
    return 0


if __name__ == '__main__':
    sys.exit(main())
