import logging

from .aggregate import default_on_error, on_error_modes
from .discovery import default_export_mode, export_modes
from .engine import default_poll_interval
from .work_managers.core import as_backend
from .yamlcfg import ConfigValueError

log = logging.getLogger(__name__)

BACKEND_DEFAULT = 'backend-default'


class Plan:
    '''How parallel loops are to be run: which work manager (or other backend) evaluates items,
    how captured variables are discovered, how failures are reported, and how many items may
    be outstanding at once.'''

    def __init__(
        self,
        work_manager=None,
        export_mode=default_export_mode,
        on_error=default_on_error,
        concurrency_cap=BACKEND_DEFAULT,
        strict=False,
        poll_interval=default_poll_interval,
    ):
        if export_mode not in export_modes:
            raise ConfigValueError(
                'export_mode', export_mode, 'bad export mode {!r} (valid choices: {!r})'.format(export_mode, export_modes)
            )
        if on_error not in on_error_modes:
            raise ConfigValueError(
                'on_error', on_error, 'bad error handling mode {!r} (valid choices: {!r})'.format(on_error, on_error_modes)
            )
        self.work_manager = work_manager
        self.export_mode = export_mode
        self.on_error = on_error
        self.concurrency_cap = self.check_concurrency_cap(concurrency_cap)
        self.strict = bool(strict)
        self.poll_interval = float(poll_interval)
        if self.poll_interval <= 0:
            raise ConfigValueError('poll_interval', poll_interval)

    def __repr__(self):
        return '<Plan work_manager={!r} export_mode={!r} on_error={!r} concurrency_cap={!r}>'.format(
            self.work_manager, self.export_mode, self.on_error, self.concurrency_cap
        )

    @staticmethod
    def check_concurrency_cap(concurrency_cap):
        if concurrency_cap is None or concurrency_cap == BACKEND_DEFAULT:
            return BACKEND_DEFAULT
        if isinstance(concurrency_cap, bool) or not isinstance(concurrency_cap, int) or concurrency_cap < 1:
            raise ConfigValueError(
                'concurrency_cap',
                concurrency_cap,
                'concurrency cap must be a positive integer or {!r}, not {!r}'.format(BACKEND_DEFAULT, concurrency_cap),
            )
        return concurrency_cap

    def replace(self, **kwargs):
        '''Return a copy of this plan with the given settings changed.'''
        settings = dict(
            work_manager=self.work_manager,
            export_mode=self.export_mode,
            on_error=self.on_error,
            concurrency_cap=self.concurrency_cap,
            strict=self.strict,
            poll_interval=self.poll_interval,
        )
        settings.update(kwargs)
        return Plan(**settings)

    def get_backend(self):
        '''Return the backend this plan dispatches to, creating the default work manager if none was given.'''
        if self.work_manager is None:
            from .work_managers import SerialWorkManager

            log.debug('no work manager configured; using serial execution')
            self.work_manager = SerialWorkManager()
        return as_backend(self.work_manager)

    def resolve_concurrency_cap(self, backend=None, concurrency_cap=None):
        '''Return the concrete cap for a run: ``concurrency_cap`` if given, else this plan's, with
        ``'backend-default'`` replaced by the backend's own limit.'''
        cap = self.check_concurrency_cap(concurrency_cap if concurrency_cap is not None else self.concurrency_cap)
        if cap == BACKEND_DEFAULT:
            if backend is None:
                backend = self.get_backend()
            cap = backend.max_concurrency()
        return cap

    @classmethod
    def from_config(cls, config, work_manager=None, section='parloop'):
        '''Build a plan from the ``section`` of a `YAMLConfig`.'''
        concurrency_cap = config.get([section, 'concurrency_cap'], BACKEND_DEFAULT)
        if isinstance(concurrency_cap, str) and concurrency_cap != BACKEND_DEFAULT:
            try:
                concurrency_cap = int(concurrency_cap)
            except ValueError:
                raise ConfigValueError([section, 'concurrency_cap'], concurrency_cap)
        return cls(
            work_manager=work_manager,
            export_mode=config.get_choice([section, 'export_mode'], export_modes, default=default_export_mode),
            on_error=config.get_choice([section, 'on_error'], on_error_modes, default=default_on_error),
            concurrency_cap=concurrency_cap,
            strict=config.get_typed([section, 'strict'], bool, default=False),
            poll_interval=config.get_typed([section, 'poll_interval'], float, default=default_poll_interval),
        )
