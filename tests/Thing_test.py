import pytest
import time
import json
from threading import Thread
import logging
import sys
import os

import boto3

import example
from pyTwin import Thing, Configuration, ShadowTransport, ApplicationError
from tests import simulator

REGION = os.environ.get('PYTWIN_REGION', 'us-east-1')
THINGNAME = os.environ.get('PYTWIN_THING')
PATH = 'tests/'

root = logging.getLogger('pyTwin')
root.setLevel(logging.DEBUG)
ch = logging.StreamHandler(sys.stdout)
ch.setLevel(logging.DEBUG)
root.addHandler(ch)
del root
del ch


@pytest.fixture
def model():
    return simulator.rootSim(readings={ 'uptime': 1 }, components={
        'sensorA': simulator.sensorSim(readings={ 'temperature': 21.5 }),
        'sensorB': simulator.sensorSim(readings=None)
    })

@pytest.fixture
def runningThing(request, model):
    transport = simulator.transportSim()
    thing = Thing(model, transport, telemetryRetryPeriod=0.05)
    t = Thread(target=thing.start)
    t.start()

    def stopThing():
        thing.stop()
        t.join(5)

    request.addfinalizer(stopThing)
    return (thing, transport, t)

def waitFor(condition, timeout=5):
    end = time.time() + timeout
    while time.time() < end:
        if condition():
            return True
        time.sleep(0.01)
    return False

def test_run_once(model):
    transport = simulator.transportSim(desired=({ 'sensorB': { 'gain': '2' } }, 3))
    config = Configuration({ 'run': 'once', 'InitialState': { 'sensorA': { 'label': 'kitchen' } } })
    Thing(model, transport, config=config, version='0.1.0').start()

    assert(transport.provisioned and transport.connected and transport.closed)
    assert(model.initialState==[ { 'Version': '0.1.0' } ])
    assert(len(transport.pushes)==1)
    assert(transport.pushes[0]['sensorA']['label']=='kitchen')
    assert(transport.acks==[ ('sensorB.gain', 2, 3, 200, 'OK') ])
    assert(transport.telemetry==[ ({ 'uptime': 1 }, None), ({ 'temperature': 21.5 }, 'sensorA') ])

def test_callbacks_are_wired(model):
    transport = simulator.transportSim()
    Thing(model, transport, runOnce=True).start()

    assert(transport.onDesired({ 'sensorA': { '__t': 'c', 'gain': '5' } }, 11)==1)
    assert(transport.acks[-1]==('sensorA.gain', 5, 11, 200, 'OK'))

    response = transport.onCommand('sensorA*reboot', b'')
    assert(response.status==200)
    assert(model.components()['sensorA'].rebooted==1)

def test_stop_ends_loop(runningThing):
    thing, transport, t = runningThing
    assert(waitFor(lambda: len(transport.telemetry) >= 2))
    thing.stop()
    t.join(5)
    assert(not t.is_alive())
    assert(transport.closed)

def test_period_zero_retries(request):
    transport = simulator.transportSim()
    model = simulator.rootSim(telemetryPeriod=0, components={ 'sensorA': simulator.sensorSim(readings={ 'temperature': 1 }) })
    thing = Thing(model, transport, telemetryRetryPeriod=0.05)
    t = Thread(target=thing.start)
    t.start()
    request.addfinalizer(thing.stop)

    # Once the period is corrected telemetry starts flowing again
    time.sleep(0.2)
    assert(transport.telemetry==[])
    transport.onDesired({ 'period': '0.05' }, 2)
    assert(waitFor(lambda: len(transport.telemetry) >= 1))
    thing.stop()
    t.join(5)

def test_provisioning_failure_is_fatal(model, caplog):
    class failingTransport(simulator.transportSim):
        def provision(self):
            raise ApplicationError('Failed. Please supply Provisioning:endpoint in configuration')

    transport = failingTransport()
    with caplog.at_level(logging.CRITICAL):
        with pytest.raises(ApplicationError):
            Thing(model, transport).start()
    assert(not transport.connected)
    assert('Provisioning: Error' in caplog.text)

def test_connect_failure_is_fatal(model, caplog):
    transport = simulator.transportSim(failPush=IOError('no route to host'))
    with caplog.at_level(logging.CRITICAL):
        with pytest.raises(IOError):
            Thing(model, transport).start()
    assert(transport.closed)
    assert(transport.telemetry==[])
    assert('Connection: Error' in caplog.text)

@pytest.mark.skipif(THINGNAME is None, reason='set PYTWIN_THING and PYTWIN_ENDPOINT to run against AWS IOT-Core')
def test_Thing_reports_to_shadow():
    transport = ShadowTransport(endpoint=os.environ.get('PYTWIN_ENDPOINT'), thingName=THINGNAME, rootCAPath=PATH+'root-CA.crt', certificatePath=PATH+THINGNAME+'.crt', privateKeyPath=PATH+THINGNAME+'.private.key')
    thing = Thing(example.controllerRoot(), transport, runOnce=True)
    thing.start()
    time.sleep(5)

    client = boto3.client('iot-data', region_name=REGION)
    thingData = json.loads(client.get_thing_shadow(thingName=THINGNAME)['payload'].read().decode('utf-8'))
    reportedState = thingData['state']['reported']
    assert(reportedState['thermostat1']['targetTemperature']==20.0)
    assert(reportedState['deviceInformation']['manufacturer']=='Example')

def test_period_failure_keeps_running(request):
    class flakyPeriodRoot(simulator.rootSim):
        def __init__(self, **kwargs):
            super(flakyPeriodRoot, self).__init__(**kwargs)
            self.periodCalls = 0

        def telemetryPeriod(self):
            self.periodCalls += 1
            if self.periodCalls == 1:
                raise RuntimeError('period unreadable')
            return 0.05

    transport = simulator.transportSim()
    model = flakyPeriodRoot(components={ 'sensorA': simulator.sensorSim(readings={ 'temperature': 1 }) })
    thing = Thing(model, transport, telemetryRetryPeriod=0.01)
    t = Thread(target=thing.start)
    t.start()
    request.addfinalizer(thing.stop)

    assert(waitFor(lambda: len(transport.telemetry) >= 1))
    assert(t.is_alive())
    thing.stop()
    t.join(5)
    assert(not t.is_alive())
