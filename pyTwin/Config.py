# -*- coding: utf-8 -*-
import json
import logging

from pyTwin.Errors import ApplicationError

class Configuration(object):
    ''' A read-only view over a nested key-value configuration tree.

    Keys are addressed with colon separated paths, so `Provisioning:endpoint` is the `endpoint` key inside the `Provisioning` section.

    Args:
        data (`dict`, optional): The nested configuration values.  `None` describes a section that does not exist.

    '''
    _logger = logging.getLogger(__name__)
    SEPARATOR = ':'

    def __init__(self, data=None):
        self._data = data

    @classmethod
    def fromFile(cls, path):
        ''' Load a configuration from a JSON file '''
        with open(path, 'r') as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ApplicationError('Configuration file {0} must contain a JSON object'.format(path))
        cls._logger.debug('Loaded configuration from {0}'.format(path))
        return cls(data)

    def _lookup(self, path):
        node = self._data
        for key in path.split(self.SEPARATOR):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def section(self, path):
        ''' Returns the configuration below `path`.  The result reports exists() as False if there is no such section '''
        node = self._lookup(path)
        return Configuration(node if isinstance(node, dict) else None)

    def exists(self):
        return self._data is not None

    def children(self):
        ''' Returns the keys of this section with their values as strings.  Nested sections are skipped '''
        if self._data is None:
            return {}
        return { k: self._asString(v) for k, v in self._data.items() if not isinstance(v, dict) }

    def get(self, path, default=None):
        value = self._lookup(path)
        return default if value is None else value

    def require(self, path):
        value = self._lookup(path)
        if value is None:
            raise ApplicationError('Failed. Please supply {0} in configuration'.format(path))
        return value

    @staticmethod
    def _asString(value):
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if value is None:
            return ''
        return json.dumps(value) if isinstance(value, list) else str(value)
