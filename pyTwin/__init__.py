"""**Keeping a python-based device model in step with a cloud device twin.**

.. moduleauthor:: dhrone
.. module:: pyTwin

pyTwin runs on the device side of a twin service such as an AWS IOT-Core device shadow.  The service holds two sets of properties for the device: the desired properties that applications ask for and the reported properties that the device says it has.  pyTwin reports the device's properties, applies desired changes to the device and acknowledges each one, sends telemetry on a schedule and routes commands from the service to the part of the device that handles them.

pyTwin models a device as a root component that owns a set of named components.  Each component exposes an identity, its reportable properties, optional telemetry and optional commands.  Writable properties and commands are declared by decorating methods of a Component subclass.  A Thing owns the device model and a Transport that connects it to the service.  It loads initial state from configuration, connects, and then repeatedly sends telemetry and reports properties until it is stopped.  Property and command requests from the service are handled as they arrive.

"""

from pyTwin.Errors import ApplicationError, AggregateError, UnknownProperty, UnknownCommand, UnknownComponent, AmbiguousComponent
from pyTwin.Component import Component, RootComponent
from pyTwin.DeviceInformation import DeviceInformation
from pyTwin.Config import Configuration
from pyTwin.InitialState import loadInitialState
from pyTwin.Transport import Transport, ShadowTransport, ackEnvelope
from pyTwin.Telemetry import TelemetryScheduler, frameTelemetry
from pyTwin.Properties import PropertySynchronizer, Backoff
from pyTwin.Commands import CommandRouter, CommandResponse
from pyTwin.Thing import Thing
