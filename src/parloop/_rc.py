"""parloop run control and configuration routines"""

import errno
import logging
import logging.config
import os
import sys

from . import resources
from .plan import Plan
from .work_managers.environment import WMEnvironment
from .yamlcfg import YAMLConfig

log = logging.getLogger('parloop.rc')


class ParloopRC:
    '''A class, an instance of which is accessible as ``parloop.rc``, to handle process-wide concerns:
    reading the run-control file, configuring logging according to verbosity, choosing a work manager,
    and holding the default `Plan` used by loops which are not given one explicitly.'''

    # Runtime config file management
    ENV_RUNTIME_CONFIG = 'PARLOOPRC'
    RC_DEFAULT_FILENAME = 'parloop.cfg'

    config_section = 'parloop'

    def __init__(self):
        self.verbosity = None
        self.rcfile = os.environ.get(self.ENV_RUNTIME_CONFIG) or self.RC_DEFAULT_FILENAME

        self.wm_env = WMEnvironment()
        self.config = YAMLConfig()
        self.process_name = os.path.splitext(os.path.basename(sys.argv[0]))[0]

        self._work_manager = None
        self._plan = None

    @property
    def config(self):
        return self._config

    @config.setter
    def config(self, config):
        self._config = config
        self.wm_env.config = config
        self._plan = None

    def add_args(self, parser):
        group = parser.add_argument_group('general options')
        group.add_argument(
            '-r',
            '--rcfile',
            metavar='RCFILE',
            dest='rcfile',
            default=(os.environ.get(self.ENV_RUNTIME_CONFIG) or self.RC_DEFAULT_FILENAME),
            help='use RCFILE as the parloop run-time configuration file (default: %(default)s)',
        )

        egroup = group.add_mutually_exclusive_group()
        egroup.add_argument('--quiet', dest='verbosity', action='store_const', const='quiet', help='emit only essential information')
        egroup.add_argument('--verbose', dest='verbosity', action='store_const', const='verbose', help='emit extra information')
        egroup.add_argument(
            '--debug', dest='verbosity', action='store_const', const='debug', help='enable extra checks and emit copious information'
        )

        from . import __version__

        group.add_argument('--version', action='version', version='parloop version %s' % __version__)

        self.wm_env.add_wm_args(parser)

    @property
    def verbose_mode(self):
        return self.verbosity in ('verbose', 'debug')

    @property
    def debug_mode(self):
        return self.verbosity == 'debug'

    @property
    def quiet_mode(self):
        return self.verbosity == 'quiet'

    def process_args(self, args, config_required=False):
        self.cmdline_args = args
        self.verbosity = args.verbosity

        if args.rcfile:
            self.rcfile = args.rcfile

        try:
            self.read_config()
        except IOError as e:
            if e.errno == errno.ENOENT and not config_required:
                pass
            else:
                raise
        self.config_logging()
        self.wm_env.process_wm_args(args)
        self.process_config()

    def process_config(self):
        log.debug('config: {!r}'.format(self.config))
        for resource in self.config.get([self.config_section, 'resources'], None) or ():
            resources.attach(resource)
        self.reset_plan()

    def read_config(self, filename=None):
        if filename:
            self.rcfile = filename

        self.config.update_from_file(self.rcfile)

    def config_logging(self):
        logging_config = {
            'version': 1,
            'incremental': False,
            'formatters': {
                'standard': {'format': '-- %(levelname)-8s [%(name)s] -- %(message)s'},
                'debug': {
                    'format': '''\
-- %(levelname)-8s %(asctime)24s PID %(process)-12d TID %(thread)-20d
   from logger "%(name)s"
   at location %(pathname)s:%(lineno)d [%(funcName)s()]
   ::
   %(message)s
'''
                },
            },
            'handlers': {'console': {'class': 'logging.StreamHandler', 'stream': 'ext://sys.stdout', 'formatter': 'standard'}},
            'loggers': {
                'parloop': {'handlers': ['console'], 'propagate': False},
                'py.warnings': {'handlers': ['console'], 'propagate': False},
            },
            'root': {'handlers': ['console']},
        }

        logging_config['loggers'][self.process_name] = {'handlers': ['console'], 'propagate': False}

        if self.verbosity == 'debug':
            logging_config['root']['level'] = 5  # 'DEBUG'
            logging_config['handlers']['console']['formatter'] = 'debug'
        elif self.verbosity == 'verbose':
            logging_config['root']['level'] = 'INFO'
        else:
            logging_config['root']['level'] = 'WARNING'

        logging.config.dictConfig(logging_config)
        logging.captureWarnings(True)

    def new_work_manager(self):
        work_manager = self.wm_env.make_work_manager()
        log.debug('loaded work manager {!r}'.format(work_manager))
        return work_manager

    def get_work_manager(self):
        if self._work_manager is None:
            self._work_manager = self.new_work_manager()
        return self._work_manager

    def set_work_manager(self, work_manager):
        self._work_manager = work_manager
        self.reset_plan()

    work_manager = property(get_work_manager, set_work_manager)

    def new_plan(self):
        plan = Plan.from_config(self.config, work_manager=self.get_work_manager(), section=self.config_section)
        log.debug('loaded plan {!r}'.format(plan))
        return plan

    def get_plan(self):
        '''Return the process-wide default plan, building it from configuration on first use.'''
        if self._plan is None:
            self._plan = self.new_plan()
        return self._plan

    def set_plan(self, plan):
        '''Replace the process-wide default plan, returning the previous one (or None).'''
        if not isinstance(plan, Plan):
            raise TypeError('{!r} is not a Plan'.format(plan))
        previous, self._plan = self._plan, plan
        log.debug('default plan set to {!r}'.format(plan))
        return previous

    def reset_plan(self):
        '''Discard the default plan; it is rebuilt from configuration when next needed.'''
        self._plan = None
