# -*- coding: utf-8 -*-
import logging
import time

from pyTwin.Errors import ApplicationError, AggregateError
from pyTwin.Transport import COMPONENTMARKER, COMPONENTTAG

ACKOK = 200

class Backoff(object):
    ''' Schedule for full reported-property updates.  Each update doubles the wait before the next one, up to maxPeriod.

    Args:
        initialPeriod (float): Seconds to wait after the first update
        maxPeriod (float): The longest wait between updates

    '''

    def __init__(self, initialPeriod=60, maxPeriod=86400):
        self.nextAllowed = None
        self.period = initialPeriod
        self.maxPeriod = maxPeriod

    def ready(self, now):
        return self.nextAllowed is None or now >= self.nextAllowed

    def advance(self, now):
        self.nextAllowed = now + self.period
        self.period = min(self.period * 2, self.maxPeriod)


class PropertySynchronizer(object):
    ''' Keeps the reported properties held by the service in step with the device model and applies desired property changes requested by the service.

    Every property change applied from a desired-properties patch is acknowledged with the version of the patch it was applied under.

    Args:
        root (:obj:`RootComponent`): The device model
        transport (:obj:`Transport`): Connection to the twin service
        clock (callable, optional): Returns a time in seconds that never goes backwards.  Default is time.monotonic
        initialPeriod (float, optional): Seconds between the first and second full update.  Default is one minute
        maxPeriod (float, optional): Longest interval between full updates.  Default is one day

    onDesired is called from the transport's threads.  The backoff state is only used by start and tick which belong to the agent loop.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, root, transport, clock=time.monotonic, initialPeriod=60, maxPeriod=86400):
        self._root = root
        self._transport = transport
        self._clock = clock
        self.backoff = Backoff(initialPeriod, maxPeriod)

    def snapshot(self):
        ''' Returns the root properties merged with the properties of each component keyed by component name '''
        update = dict(self._root.getProperties())
        for name, component in self._root.components().items():
            properties = { COMPONENTMARKER: COMPONENTTAG }
            properties.update(component.getProperties())
            update[name] = properties
        return update

    def _pushFullProperties(self):
        update = self.snapshot()
        self._transport.pushFullProperties(update)
        self.backoff.advance(self._clock())
        self._logger.info('Property: OK Reported {0} properties'.format(len(update)))
        self._logger.debug('Property: Next full update after {0}s'.format(self.backoff.nextAllowed - self._clock()))

    def start(self):
        ''' Report every property once the connection is open, then apply whatever the service currently desires.  Errors are fatal '''
        self._pushFullProperties()

        desired = self._transport.getDesired()
        if desired is not None:
            patch, version = desired
            self.onDesired(patch, version)

    def tick(self):
        ''' Report every property if the backoff schedule allows it '''
        if not self.backoff.ready(self._clock()):
            return False

        try:
            self._pushFullProperties()
            return True
        except ApplicationError as e:
            self._logger.error('Property: Application Error. {0}'.format(e))
        except AggregateError as e:
            for exception in e.errors:
                self._logger.error('Property: Multiple reporting errors. {0}'.format(exception), exc_info=exception)
        except Exception:
            self._logger.exception('Property: Reporting error')
        return False

    def onDesired(self, patch, version):
        ''' Apply a desired-properties patch and acknowledge each property that was applied

        Args:
            patch (`dict`): Property names and requested values.  A key naming a component holds a `dict` of that component's properties.
            version (int): Version of the patch

        Returns:
            The number of properties applied

        A property that can not be applied is logged and skipped.  The rest of the patch is still applied.

        '''
        self._logger.debug('Property: Desired {0} version {1}'.format(patch, version))
        components = self._root.components()
        applied = 0

        for key, value in patch.items():
            if key in components:
                if not isinstance(value, dict):
                    self._logger.error('Property: Update failed for {0}. Expected a map of component properties'.format(key))
                    continue
                for child, childValue in value.items():
                    if child == COMPONENTMARKER:
                        continue
                    if self._apply(components[key], '{0}.{1}'.format(key, child), child, childValue, version):
                        applied += 1
            else:
                if self._apply(self._root, key, key, value, version):
                    applied += 1

        return applied

    def _apply(self, component, fullname, property, value, version):
        try:
            updated = component.setProperty(property, value)
            self._logger.info('Property: OK. Updated {0} to {1}'.format(fullname, updated))

            # Acknowledge the request back to the service
            self._transport.sendPropertyAck(fullname, updated, version, ACKOK, 'OK')
            return True
        except (ApplicationError, ValueError, TypeError) as e:
            self._logger.error('Property: Update failed for {0}. {1}'.format(fullname, e))
        except AggregateError as e:
            for exception in e.errors:
                self._logger.error('Property: Multiple update failures for {0}. {1}'.format(fullname, exception), exc_info=exception)
        except Exception:
            self._logger.exception('Property: Update failed for {0}'.format(fullname))
        return False
