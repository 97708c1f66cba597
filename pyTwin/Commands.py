# -*- coding: utf-8 -*-
from collections import namedtuple
import logging
import json

from pyTwin.Errors import AggregateError, UnknownCommand, UnknownComponent, AmbiguousComponent

SEPARATOR = '*'

CommandResponse = namedtuple('CommandResponse', ['status', 'payload'])
CommandResponse.__doc__ = ''' Result of a command.  status is an HTTP style status code and payload is UTF-8 encoded JSON '''

class CommandRouter(object):
    ''' Routes commands from the service to the component that implements them.

    A command name of the form `component*command` is sent to the named component.  A name without the separator is sent to the root.

    Args:
        root (:obj:`RootComponent`): The device model
        separator (str, optional): Splits component and command names.  Default is `*`

    handle always returns a :obj:`CommandResponse`.  Failures become error responses and are never raised to the transport.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, root, separator=SEPARATOR):
        self._root = root
        self._separator = separator

    def resolve(self, name):
        ''' Returns (component, command) for a command name '''
        if self._separator not in name:
            return (self._root, name)

        componentname, command = name.split(self._separator, 1)
        matches = [ c for n, c in self._root.components().items() if n == componentname ]
        if not matches:
            raise UnknownComponent('Unknown component: {0}'.format(componentname))
        if len(matches) > 1:
            raise AmbiguousComponent('Ambiguous component: {0}'.format(componentname))
        return (matches[0], command)

    def handle(self, name, rawParams):
        ''' Execute a command received from the service

        Args:
            name (str): The command name, optionally prefixed by a component name and the separator
            rawParams (bytes): JSON encoded parameters.  Empty or None if the command has no parameters

        Returns:
            :obj:`CommandResponse`

        '''
        self._logger.debug('Command: Received {0}'.format(name))
        try:
            component, command = self.resolve(name)
            try:
                params = self._decode(rawParams)
            except ValueError as e:
                return self._error(400, name, e)

            result = component.doCommand(command, params)
            resultjson = json.dumps(result)
            self._logger.info('Command: OK {0} Response: {1}'.format(name, resultjson))
            return CommandResponse(200, resultjson.encode('utf-8'))
        except (UnknownComponent, AmbiguousComponent, UnknownCommand) as e:
            return self._error(404, name, e)
        except AggregateError as e:
            for exception in e.errors:
                self._logger.error('Command: {0} Multiple failures. {1}'.format(name, exception), exc_info=exception)
            return self._response(500, e)
        except Exception as e:
            self._logger.exception('Command: {0} Failed'.format(name))
            return self._response(500, e)

    @staticmethod
    def _decode(rawParams):
        if rawParams is None:
            return None
        if isinstance(rawParams, bytes):
            rawParams = rawParams.decode('utf-8')
        if not rawParams.strip():
            return None
        return json.loads(rawParams)

    def _error(self, status, name, error):
        self._logger.error('Command: {0} Failed. {1}'.format(name, error))
        return self._response(status, error)

    @staticmethod
    def _response(status, error):
        body = { 'error': error.__class__.__name__, 'message': str(error) }
        return CommandResponse(status, json.dumps(body).encode('utf-8'))
