'''
YAML-based run-control files for parloop. Settings live in nested sections, and are
looked up by a path of keys, e.g. ``['parloop', 'export_mode']``.
'''

import os
import warnings

import yaml

try:
    from yaml import CSafeLoader as YLoader
except ImportError:
    # fall back on Python implementation
    from yaml import SafeLoader as YLoader

NotProvided = object()


class ConfigValueWarning(UserWarning):
    pass


def warn_dubious_config_entry(entry, value, expected_type, stacklevel=1):
    warnings.warn(
        'dubious value {!r} for configuration item {!r} (expected {})'.format(value, entry, expected_type.__name__),
        ConfigValueWarning,
        stacklevel + 1,
    )


class ConfigItemMissing(KeyError):
    def __init__(self, key, message=None):
        self.key = key
        super().__init__(message or 'configuration item missing: {!r}'.format(key))


class ConfigItemTypeError(TypeError):
    def __init__(self, key, expected_type, message=None):
        self.key = key
        self.expected_type = expected_type
        super().__init__(message or 'configuration item {!r} must have type {!r}'.format(key, expected_type))


class ConfigValueError(ValueError):
    def __init__(self, key, value, message=None):
        self.key = key
        self.value = value
        super().__init__(message or 'bad value {!r} for configuration item {!r}'.format(value, key))


class YAMLConfig:
    '''A nested mapping loaded from YAML files. Keys may be given as a single string or as a
    sequence of strings naming a path through nested sections.'''

    preload_config_files = ['/etc/parloop/parlooprc', os.path.expanduser('~/.parlooprc')]

    def __init__(self, preload=True):
        self._data = {}

        if preload:
            for source in self.preload_config_files:
                self.update_from_file(source, required=False)

    def __repr__(self):
        return repr(self._data)

    def update_from_file(self, file, required=True):
        if isinstance(file, str):
            if not required and not os.path.exists(file):
                return
            file = open(file, 'rt')

        with file:
            self.update_from_dict(yaml.load(file, Loader=YLoader) or {})

    def update_from_dict(self, data):
        if not isinstance(data, dict):
            raise ConfigItemTypeError('<top level>', dict)
        self._data.update(data)

    def __getitem__(self, key):
        path = (key,) if isinstance(key, str) else tuple(key)
        if not path:
            raise KeyError(key)
        item = self._data
        for part in path:
            item = item[part]
        return item

    def get(self, key, default=None):
        try:
            return self[key]
        except (KeyError, TypeError):
            return default

    def _get_required(self, key, default):
        try:
            return self[key]
        except (KeyError, TypeError):
            if default is NotProvided:
                raise ConfigItemMissing(key)
            return default

    def get_typed(self, key, type_, default=NotProvided):
        '''Return the item at ``key`` converted to ``type_``. Booleans are converted with ``bool()``,
        so a non-boolean value (such as the string ``'no'``) draws a `ConfigValueWarning`.'''
        item = self._get_required(key, default)

        if type_ is bool and not isinstance(item, bool):
            warn_dubious_config_entry(key, item, bool, stacklevel=2)

        try:
            return type_(item)
        except (TypeError, ValueError) as e:
            raise ConfigValueError(key, item, 'cannot convert {!r} for configuration item {!r}: {!s}'.format(item, key, e))

    def get_choice(self, key, choices, default=NotProvided, value_transform=None):
        value = self._get_required(key, default)
        if value_transform:
            value = value_transform(value)

        choices = set(choices)
        if value not in choices:
            raise ConfigValueError(
                key,
                value,
                'bad value {!r} for configuration item {!r} (valid choices: {!r})'.format(value, key, tuple(sorted(choices))),
            )
        return value
