# -*- coding: utf-8 -*-
import logging
import json

from pyTwin.Errors import ApplicationError, AggregateError

def frameTelemetry(reading):
    ''' Serialize the readings of a single component into a message payload '''
    return json.dumps(reading).encode('utf-8')


class TelemetryScheduler(object):
    ''' Polls the device model for telemetry and sends one message per component that has readings.

    Each message carries the readings of exactly one component so that the service can attribute every reading to the component that produced it.

    Args:
        root (:obj:`RootComponent`): The device model
        transport (:obj:`Transport`): Where messages are sent
        retryPeriod (float, optional): Seconds to wait before checking again when the telemetry period is zero.  Default is 60 seconds.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, root, transport, retryPeriod=60):
        self._root = root
        self._transport = transport
        self._retryPeriod = retryPeriod

    def poll(self):
        ''' Run one telemetry cycle

        Returns:
            The number of seconds to wait before the next cycle

        '''
        period = self._retryPeriod
        try:
            configured = self._root.telemetryPeriod()
            if not configured or configured <= 0:
                self._logger.warning('Telemetry: Telemetry period not configured. Nothing sent. Will try again in {0}s'.format(self._retryPeriod))
                return self._retryPeriod

            period = configured
            self._sendTelemetry()
        except ApplicationError as e:
            self._logger.error('Telemetry: Application Error. {0}'.format(e))
        except AggregateError as e:
            for exception in e.errors:
                self._logger.error('Telemetry: Multiple Errors. {0}'.format(exception), exc_info=exception)
        except Exception:
            self._logger.exception('Telemetry: Error')

        return period

    def _sendTelemetry(self):
        numsent = 0
        errors = []

        candidates = [ (None, self._root) ]
        candidates.extend(self._root.components().items())
        for name, component in candidates:
            if not component.hasTelemetry:
                continue
            try:
                reading = component.getTelemetry()
            except Exception as e:
                errors.append(e)
                continue

            if reading is None:
                continue

            self._transport.sendTelemetryMessage(frameTelemetry(reading), name)
            numsent += 1
            self._logger.debug('Telemetry: {0} {1}'.format(name or 'Root', ' '.join('{0}={1}'.format(k, v) for k, v in reading.items())))

        if numsent > 0:
            self._logger.info('Telemetry: OK {0} messages'.format(numsent))
        elif not errors:
            self._logger.warning('Telemetry: No components had available readings. Nothing sent')

        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise AggregateError('Telemetry: {0} components failed'.format(len(errors)), errors)

        return numsent
