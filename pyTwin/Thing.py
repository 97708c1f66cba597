# -*- coding: utf-8 -*-
from threading import Event
import logging
import time

from pyTwin.Config import Configuration
from pyTwin.InitialState import loadInitialState
from pyTwin.Telemetry import TelemetryScheduler
from pyTwin.Properties import PropertySynchronizer
from pyTwin.Commands import CommandRouter

class Thing(object):
    ''' A thing is a device model kept in step with a twin service.  It loads initial state, connects through the transport and then repeatedly sends telemetry and reports properties until it is stopped.

        Args:
            root (:obj:`RootComponent`): The device model.  Owned by the thing for its whole lifetime
            transport (:obj:`Transport`): Connection to the twin service
            config (:obj:`Configuration`, optional): Source of initial state and of the `run` option
            version (`str`, optional): Software build version passed to the root as the `Version` initial state key
            telemetryRetryPeriod (`float`, optional): Seconds to wait when the root reports a telemetry period of zero.  Default is 60 seconds
            runOnce (`bool`, optional): Run a single iteration then stop.  Also enabled by `"run": "once"` in the configuration
            clock (callable, optional): Returns a time in seconds that never goes backwards.  Default is time.monotonic

        Desired property and command callbacks arrive on the transport's threads and can run at the same time as the main loop.  Components must therefore be safe to call from several threads.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, root, transport, config=None, version=None, telemetryRetryPeriod=60, runOnce=False, clock=time.monotonic):
        self._root = root
        self._transport = transport
        self._config = config if config is not None else Configuration()
        self._version = version
        self._runOnce = runOnce or self._config.get('run') == 'once'
        self._stopEvent = Event()

        self.telemetry = TelemetryScheduler(root, transport, telemetryRetryPeriod)
        self.properties = PropertySynchronizer(root, transport, clock)
        self.commands = CommandRouter(root)

    def start(self):
        ''' Run the thing on the calling thread until stop is called.  Startup failures are raised '''
        self._logger.info('Started OK')
        self._logger.info('Model: {0}'.format(self._root.identity()))

        loadInitialState(self._root, self._config, self._version)
        self._provision()
        try:
            self._connect()
            self._main()
        finally:
            self._transport.close()

    def stop(self):
        ''' Ask the thing to stop.  Safe to call from any thread '''
        self._stopEvent.set()

    def stopped(self):
        return self._stopEvent.is_set()

    def _provision(self):
        try:
            self._transport.provision()
        except Exception as e:
            self._logger.critical('Provisioning: Error {0}'.format(e))
            raise

    def _connect(self):
        try:
            self._transport.connect(self.properties.onDesired, self.commands.handle)

            # Report current state, then apply whatever the service currently desires
            self.properties.start()
        except Exception as e:
            self._logger.critical('Connection: Error {0}'.format(e))
            raise

    def _main(self):
        while not self._stopEvent.is_set():
            delay = self.telemetry.poll()
            self.properties.tick()

            if self._runOnce:
                break

            # wait returns True when stop has been requested
            if self._stopEvent.wait(delay):
                break

        self._logger.info('Device Worker: Stopped')
