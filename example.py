from threading import Lock
import logging
import signal
import random
import time
import sys
import re

import serial

from pyTwin import Thing, Component, RootComponent, DeviceInformation, Configuration, ShadowTransport


class thermostatComponent(Component):
    ''' A simulated thermostat '''

    dtmi = 'dtmi:com:example:Thermostat;1'
    hasTelemetry = True
    defaultProperties = { 'targetTemperature': 20.0, 'maxTempSinceLastReboot': None }

    def __init__(self, name=None):
        super(thermostatComponent, self).__init__(name)
        self._readingsLock = Lock()
        self._count = 0
        self._total = 0.0
        self._maxTemp = None
        self._minTemp = None
        self._started = time.time()

    @Component.propertySetter('targetTemperature')
    def setTargetTemperature(self, property, value):
        temperature = float(value)
        if not -40.0 <= temperature <= 120.0:
            raise ValueError('{0} is not a valid value for property {1}'.format(value, property))
        return temperature

    def getTelemetry(self):
        temperature = round(self.getProperties()['targetTemperature'] + random.uniform(-0.5, 0.5), 1)
        with self._readingsLock:
            self._count += 1
            self._total += temperature
            self._maxTemp = temperature if self._maxTemp is None else max(self._maxTemp, temperature)
            self._minTemp = temperature if self._minTemp is None else min(self._minTemp, temperature)
            maxTemp = self._maxTemp
        self.updateProperty('maxTempSinceLastReboot', maxTemp)
        return { 'temperature': temperature }

    @Component.command('getMaxMinReport')
    def getMaxMinReport(self, params):
        with self._readingsLock:
            if not self._count:
                return {}
            return {
                'maxTemp': self._maxTemp,
                'minTemp': self._minTemp,
                'avgTemp': self._total / self._count,
                'startTime': self._started,
                'endTime': time.time()
            }


class climateSensorComponent(Component):
    ''' A temperature and humidity sensor attached to a serial port.

    The sensor sends a line such as `T+21.5H40.2` every few seconds.  Each telemetry cycle reads everything that has arrived since the last cycle and reports the most recent valid line.

    Args:
        name (str, optional): The identity of the component
        stream (:obj:`serial.Serial`, optional): An open stream connected to the sensor.  If not provided, the `port` initial state key is used to open one.

    '''

    dtmi = 'dtmi:com:example:ClimateSensor;1'
    hasTelemetry = True
    defaultProperties = { 'currentTemperature': None, 'currentHumidity': None }

    _reading = re.compile(r'^T([+-]?[0-9]{1,3}(?:[\.][0-9])?)H([0-9]{1,3}(?:[\.][0-9])?)$')

    def __init__(self, name=None, stream=None):
        super(climateSensorComponent, self).__init__(name)
        self._stream = stream
        self._readlock = Lock()
        self._buffer = b''

    @Component.propertySetter('temperatureCorrection')
    def setTemperatureCorrection(self, property, value):
        correction = float(value)
        if abs(correction) > 10.0:
            raise ValueError('{0} is not a valid value for property {1}'.format(value, property))
        return correction

    def setInitialState(self, values):
        super(climateSensorComponent, self).setInitialState(values)
        if self._stream is None and 'port' in values:
            self._stream = serial.serial_for_url(values['port'], baudrate=int(values.get('baudRate', 9600)), timeout=1)
            self._logger.debug('Sensor {0}: Opened {1}'.format(self, values['port']))

    def _readLines(self):
        with self._readlock:
            waiting = self._stream.in_waiting
            if waiting:
                self._buffer += self._stream.read(waiting)
            lines = self._buffer.split(b'\n')
            self._buffer = lines.pop()
        return [ l.decode('ascii', 'replace').strip() for l in lines ]

    def getTelemetry(self):
        if self._stream is None:
            return None

        reading = None
        for line in self._readLines():
            match = self._reading.match(line)
            if match:
                reading = match
            elif line:
                self._logger.warning('Sensor {0}: Unable to process response [{1}]'.format(self, line))

        if reading is None:
            return None

        correction = self.getProperties().get('temperatureCorrection') or 0.0
        temperature = float(reading.group(1)) + correction
        humidity = float(reading.group(2))

        # Keep the reported current values in step with the telemetry
        self.updateProperty('currentTemperature', temperature)
        self.updateProperty('currentHumidity', humidity)
        return { 'temperature': temperature, 'humidity': humidity }


class controllerRoot(RootComponent):
    ''' A temperature controller made of two thermostats, a serial climate sensor and device information '''

    dtmi = 'dtmi:com:example:TemperatureController;2'
    hasTelemetry = True
    defaultProperties = { 'SoftwareVersion': None, 'serialNumber': None }

    def __init__(self, sensorStream=None, telemetryPeriod=10):
        components = {
            'thermostat1': thermostatComponent(),
            'thermostat2': thermostatComponent(),
            'sensor': climateSensorComponent(stream=sensorStream),
            'deviceInformation': DeviceInformation(manufacturer='Example', model='TemperatureController', swVersion='0.1.0')
        }
        super(controllerRoot, self).__init__(components=components, telemetryPeriod=telemetryPeriod)
        self._started = time.time()

    def setInitialState(self, values):
        if 'Version' in values:
            self.updateProperty('SoftwareVersion', values['Version'])
        if 'serialNumber' in values:
            self.updateProperty('serialNumber', values['serialNumber'])

    def getTelemetry(self):
        return { 'uptime': round(time.time() - self._started, 1) }

    @Component.command('reboot')
    def reboot(self, params):
        delay = int(params or 0)
        if delay < 0:
            raise ValueError('{0} is not a valid reboot delay'.format(params))
        self._logger.info('Reboot requested in {0}s'.format(delay))
        return { 'delay': delay }


def stopOnSignals(thing):
    ''' Stop the thing cleanly on Ctrl-C or a service manager's SIGTERM.  Must be called from the main thread '''

    def handler(signum, frame):
        logging.getLogger(__name__).info('Received signal {0}. Stopping'.format(signum))
        thing.stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, handler)


def main(path):
    config = Configuration.fromFile(path)
    thing = Thing(controllerRoot(), ShadowTransport.fromConfig(config), config=config)
    stopOnSignals(thing)
    thing.start()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, stream=sys.stdout, format='%(asctime)s %(name)s %(levelname)s %(message)s')
    main(sys.argv[1] if len(sys.argv) > 1 else 'config.json')
