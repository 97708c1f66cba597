# -*- coding: utf-8 -*-
from threading import RLock
from types import MappingProxyType
import logging

from pyTwin.Errors import UnknownProperty, UnknownCommand

class Component(object):
    ''' Components are the units that make up a device model.  Each one exposes an identity, a set of reportable properties, optional telemetry and optional commands.

    Writable properties and commands are declared by decorating methods with **propertySetter** and **command**.  The tables that map names to these methods are built once when the component is constructed.

    Args:
        name (str, optional): The identity of the component.  Defaults to the class attribute `dtmi` or, if that is not set, the class name.

    Components may be called from several threads at once (the agent loop and the transport callbacks) so the property bag is guarded by a per-component lock.  Subclasses that keep additional state are responsible for their own synchronization.

    '''
    _logger = logging.getLogger(__name__)

    dtmi = None # Identifier of the model implemented by the component
    hasTelemetry = False # Set True if getTelemetry can produce readings
    defaultProperties = {} # Initial values of reportable properties

    def __init__(self, name=None):
        identity = name or self.dtmi or self.__class__.__name__
        if not isinstance(identity, str) or not identity:
            raise ValueError('Component identity must be a non-empty string')
        self._identity = identity
        self._lock = RLock()

        self._initializeHandlers() # Determine what properties and commands are being handled

    def __str__(self):
        return self._identity

    def identity(self):
        ''' Returns the stable identifier of this component '''
        return self._identity

    @classmethod
    def propertySetter(cls, property):
        ''' Decorates the method that validates and applies a new value for a writable property.

        Args:
          property (str or `list` of str): the property name (or names) handled by the method

        The decorated method receives the property name and the raw value delivered by the service and must return the value to store.  The returned value is what is reported back in the acknowledgement so it should be the converted, well-typed value and not the raw input.  Raise a ValueError or TypeError if the value can not be applied.

        **Example:**

            .. code-block:: python

                @Component.propertySetter('targetTemperature')
                def setTargetTemperature(self, property, value):
                    temperature = float(value)
                    if not -40 <= temperature <= 120:
                        raise ValueError('{0} is out of range for {1}'.format(value, property))
                    return temperature

        '''

        def decorateinterface(func):
            names = getattr(func, '__propertySetter__', [])
            names.extend(property if type(property) is list else [ property ])
            func.__propertySetter__ = names
            return func

        return decorateinterface

    @classmethod
    def command(cls, name):
        ''' Decorates the method that executes a command.

        Args:
          name (str): the command name as it is sent by the service

        The decorated method receives the deserialized command parameters (or None if none were sent) and must return a JSON serializable result.

        '''

        def decorateinterface(func):
            names = getattr(func, '__command__', [])
            names.append(name)
            func.__command__ = names
            return func

        return decorateinterface

    def _initializeHandlers(self):
        self._setters = {}
        self._commands = {}
        for supercls in reversed(self.__class__.__mro__): # Subclass handlers override inherited ones
            for method in supercls.__dict__.values():
                for p in getattr(method, '__propertySetter__', []):
                    self._setters[p] = method
                for c in getattr(method, '__command__', []):
                    self._commands[c] = method

        self.properties = { p: None for p in self._setters }
        self.properties.update(self.defaultProperties)

    def updateProperty(self, property, value):
        ''' Record the current value of a reportable property '''
        with self._lock:
            self.properties[property] = value

    def getProperties(self):
        ''' Returns a snapshot of every reportable property.  A value of None means the property is not yet available '''
        with self._lock:
            return dict(self.properties)

    def getTelemetry(self):
        ''' Override this method if your component produces telemetry

        Returns:
            A `dict` of metric names and values

            `None` if there is nothing to send this cycle

        '''
        return None

    def setProperty(self, property, value):
        ''' Apply a new value to a writable property and return the value that was stored '''
        method = self._setters.get(property)
        if method is None:
            raise UnknownProperty('Property {0} is not implemented on {1}'.format(property, self._identity))

        applied = method(self, property, value)
        self.updateProperty(property, applied)
        return applied

    def doCommand(self, name, params):
        ''' Execute a command and return its result '''
        method = self._commands.get(name)
        if method is None:
            raise UnknownCommand('Command {0} is not implemented on {1}'.format(name, self._identity))

        return method(self, params)

    def setInitialState(self, values):
        ''' Apply initial state from configuration.  Override this method if your component takes configuration that is not a writable property.

        Args:
            values (`dict`): Every configuration value that could apply to this component.  Keys the component does not recognize are ignored.

        '''
        for k, v in values.items():
            if k in self._setters:
                self.setProperty(k, v)


class RootComponent(Component):
    ''' The root of a device model.  In addition to being a component itself, the root owns the named sub-components and decides how often telemetry is sent.

    Args:
        name (str, optional): The identity of the root component
        components (`dict` of str to :obj:`Component`, optional): The sub-components keyed by component name
        telemetryPeriod (float, optional): Seconds between telemetry cycles.  Zero disables telemetry.  Default is 10 seconds.

    '''

    def __init__(self, name=None, components=None, telemetryPeriod=10):
        super(RootComponent, self).__init__(name)

        components = dict(components or {})
        for n, c in components.items():
            if not isinstance(n, str) or not n:
                raise ValueError('Component names must be non-empty strings')
            if c is self:
                raise ValueError('The root component can not be registered as {0}'.format(n))
            if n in self.properties:
                # Both would share one key in the reported properties
                raise ValueError('Component {0} has the same name as a property of {1}'.format(n, self._identity))
        self._components = MappingProxyType(components)
        self._telemetryPeriod = telemetryPeriod

    def telemetryPeriod(self):
        ''' Returns the number of seconds between telemetry cycles.  Override this method if the period can change at runtime '''
        return self._telemetryPeriod

    def components(self):
        ''' Returns the read-only mapping of component names to components '''
        return self._components
