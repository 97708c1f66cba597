import logging
import time

import pytest

from pyTwin import PropertySynchronizer, Backoff, Thing, ApplicationError, AggregateError, ackEnvelope
from tests import simulator

@pytest.fixture
def clock():
    return simulator.clockSim()

@pytest.fixture
def model():
    return simulator.rootSim(components={
        'sensorA': simulator.sensorSim(),
        'sensorB': simulator.sensorSim()
    })

def newSynchronizer(model, transport, clock):
    return PropertySynchronizer(model, transport, clock=clock)

def test_backoff_doubles_and_caps():
    backoff = Backoff(60, 86400)
    periods = []
    for i in range(15):
        backoff.advance(0)
        periods.append(backoff.period)
    assert(periods[:5]==[120, 240, 480, 960, 1920])
    for n, period in enumerate(periods, 1):
        assert(period==min(60 * 2**n, 86400))
    assert(max(periods)==86400)

def test_snapshot_merges_components(model):
    model.components()['sensorA'].setProperty('gain', 5)
    snapshot = newSynchronizer(model, simulator.transportSim(), simulator.clockSim()).snapshot()
    assert(snapshot=={
        'period': None,
        'sensorA': { '__t': 'c', 'gain': 5, 'label': None, 'serial': 'S-1' },
        'sensorB': { '__t': 'c', 'gain': None, 'label': None, 'serial': 'S-1' }
    })

def test_tick_follows_backoff(model, clock):
    transport = simulator.transportSim()
    synchronizer = newSynchronizer(model, transport, clock)

    synchronizer.start()
    assert(len(transport.pushes)==1)

    # Nothing more until the first period has passed
    assert(not synchronizer.tick())
    clock.advance(59)
    assert(not synchronizer.tick())
    clock.advance(1)
    assert(synchronizer.tick())
    assert(len(transport.pushes)==2)

    # Then the period doubles
    clock.advance(119)
    assert(not synchronizer.tick())
    clock.advance(1)
    assert(synchronizer.tick())
    assert(synchronizer.backoff.period==480)

def test_failed_tick_retries_next_tick(model, clock, caplog):
    transport = simulator.transportSim(failPush=ApplicationError('service busy'))
    synchronizer = newSynchronizer(model, transport, clock)
    with caplog.at_level(logging.ERROR):
        assert(not synchronizer.tick())
    assert('Application Error. service busy' in caplog.text)
    assert(synchronizer.backoff.period==60)

    transport.failPush = None
    assert(synchronizer.tick())
    assert(synchronizer.backoff.nextAllowed==clock() + 60)

def test_aggregate_failure_logs_each_cause(model, clock, caplog):
    transport = simulator.transportSim(failPush=AggregateError('many', [ IOError('first cause'), IOError('second cause') ]))
    with caplog.at_level(logging.ERROR):
        newSynchronizer(model, transport, clock).tick()
    assert('first cause' in caplog.text)
    assert('second cause' in caplog.text)

def test_unexpected_failure_is_logged(model, clock, caplog):
    transport = simulator.transportSim(failPush=RuntimeError('boom'))
    with caplog.at_level(logging.ERROR):
        assert(not newSynchronizer(model, transport, clock).tick())
    assert('Property: Reporting error' in caplog.text)

def test_start_applies_current_desired(model, clock):
    transport = simulator.transportSim(desired=({ 'sensorB': { 'gain': '3' } }, 4))
    newSynchronizer(model, transport, clock).start()
    assert(model.components()['sensorB'].getProperties()['gain']==3)
    assert(transport.acks==[ ('sensorB.gain', 3, 4, 200, 'OK') ])

def test_start_failure_is_raised(model, clock):
    transport = simulator.transportSim(failPush=IOError('no route'))
    with pytest.raises(IOError):
        newSynchronizer(model, transport, clock).start()

def test_component_patch_skips_marker(model, clock):
    transport = simulator.transportSim()
    applied = newSynchronizer(model, transport, clock).onDesired({ 'sensorA': { '__t': 'c', 'gain': '5' } }, 7)

    assert(applied==1)
    assert(model.components()['sensorA'].getProperties()['gain']==5)
    assert(transport.acks==[ ('sensorA.gain', 5, 7, 200, 'OK') ])
    assert(transport.reported==[ { 'sensorA': { '__t': 'c', 'gain': { 'value': 5, 'ac': 200, 'av': 7, 'ad': 'OK' } } } ])

def test_root_patch_is_not_wrapped(model, clock):
    transport = simulator.transportSim()
    newSynchronizer(model, transport, clock).onDesired({ 'period': '30' }, 2)
    assert(model.telemetryPeriod()==30.0)
    assert(transport.reported==[ { 'period': { 'value': 30.0, 'ac': 200, 'av': 2, 'ad': 'OK' } } ])

def test_partial_application(model, clock, caplog):
    transport = simulator.transportSim()
    patch = {
        'period': '15',
        'volume': 11,
        'sensorA': { 'gain': 'loud', 'label': 'kitchen', 'color': 'red' },
        'sensorB': { 'gain': '-1', 'label': 'hall' }
    }
    with caplog.at_level(logging.ERROR):
        applied = newSynchronizer(model, transport, clock).onDesired(patch, 9)

    assert(applied==3)
    assert(sorted(a[0] for a in transport.acks)==[ 'period', 'sensorA.label', 'sensorB.label' ])
    assert(all(a[2]==9 for a in transport.acks))
    assert('Update failed for volume' in caplog.text)
    assert('Update failed for sensorA.gain' in caplog.text)
    assert('Update failed for sensorA.color' in caplog.text)
    assert('Update failed for sensorB.gain' in caplog.text)

def test_component_value_must_be_a_map(model, clock, caplog):
    transport = simulator.transportSim()
    with caplog.at_level(logging.ERROR):
        applied = newSynchronizer(model, transport, clock).onDesired({ 'sensorA': 5, 'period': 1 }, 3)
    assert(applied==1)
    assert('Update failed for sensorA' in caplog.text)

def test_reapplying_reported_value_is_acknowledged(model, clock):
    transport = simulator.transportSim()
    model.components()['sensorA'].setProperty('gain', 5)
    synchronizer = newSynchronizer(model, transport, clock)
    synchronizer.start()
    assert(transport.pushes[0]['sensorA']['gain']==5)

    synchronizer.onDesired({ 'sensorA': { 'gain': 5 } }, 12)
    assert(transport.acks==[ ('sensorA.gain', 5, 12, 200, 'OK') ])

def test_ack_envelope():
    assert(ackEnvelope('gain', 5, 1, 200, 'OK')=={ 'gain': { 'value': 5, 'ac': 200, 'av': 1, 'ad': 'OK' } })
    assert(ackEnvelope('sensorA.gain', 5, 1, 200, 'OK')=={ 'sensorA': { '__t': 'c', 'gain': { 'value': 5, 'ac': 200, 'av': 1, 'ad': 'OK' } } })

def test_backoff_ignores_wall_clock(model):
    transport = simulator.transportSim()
    assert(PropertySynchronizer(model, transport)._clock is time.monotonic)
    assert(Thing(model, transport).properties._clock is time.monotonic)
