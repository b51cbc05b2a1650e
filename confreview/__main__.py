'''
CLI interface for the review engine
'''

import argparse
import json
import logging
import time

from .core import AutoAssigner, DEFAULT_REVIEWERS_PER_PAPER
from .db import create_db_engine, create_session_factory, init_db
from .exceptions import ReviewEngineError
from .stats import AssignmentStats

logger = logging.getLogger()
logger.setLevel(logging.DEBUG)

log_format = '%(asctime)s %(levelname)s: [in %(pathname)s:%(lineno)d] %(message)s'
logging.basicConfig(filename="default.log", format=log_format)

consoleHandler = logging.StreamHandler()
consoleHandler.setLevel(logging.INFO)
logger.addHandler(consoleHandler)

t0 = time.time()
logger.info('Starting time={}'.format(t0))

parser = argparse.ArgumentParser(prog='confreview')
parser.add_argument(
    '--database-url',
    default='sqlite:///confreview.db',
    help='SQLAlchemy database url, e.g. "postgresql://user@localhost/confreview"'
)
parser.add_argument('--echo', action='store_true', help='Log every SQL statement')

subparsers = parser.add_subparsers(dest='command', required=True)

subparsers.add_parser('init-db', help='Create all tables')

auto_assign_parser = subparsers.add_parser(
    'auto-assign',
    help='Top up every paper of a conference to the target number of reviewers'
)
auto_assign_parser.add_argument('--conference', required=True)
auto_assign_parser.add_argument(
    '--actor',
    required=True,
    help='Id of the chair or admin the run is performed as'
)
auto_assign_parser.add_argument('--target', type=int, default=DEFAULT_REVIEWERS_PER_PAPER)

stats_parser = subparsers.add_parser('stats', help='Print assignment statistics of a conference')
stats_parser.add_argument('--conference', required=True)
stats_parser.add_argument('--actor', required=True)

args = parser.parse_args()

engine = create_db_engine(args.database_url, echo=args.echo)
session = create_session_factory(engine)()

try:
    if args.command == 'init-db':
        init_db(engine, logger=logger)
        result = {'created': True}
    elif args.command == 'auto-assign':
        assigner = AutoAssigner(session, logger=logger)
        result = assigner.run(args.conference, args.actor, args.target).to_dict()
    else:
        result = AssignmentStats(session, logger=logger).for_conference(args.conference, args.actor)
except ReviewEngineError as error_handle:
    logger.error('{}: {}'.format(error_handle.name, error_handle.message))
    raise SystemExit(1)
finally:
    session.close()

print(json.dumps(result, indent=2))

t1 = time.time()
logger.info('Overall execution time: {0} seconds'.format(t1-t0))
