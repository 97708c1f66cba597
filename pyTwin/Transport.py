# -*- coding: utf-8 -*-
from threading import Event
import logging
import json
import os

from AWSIoTPythonSDK.MQTTLib import AWSIoTMQTTShadowClient

from pyTwin.Errors import ApplicationError

COMPONENTMARKER = '__t' # Marks a nested map as belonging to a named component
COMPONENTTAG = 'c'

def ackEnvelope(key, value, version, code, description):
    ''' Build the reported-properties patch that acknowledges one applied property.

    Args:
        key (str): Either `property` for a root property or `component.property`
        value: The value that was applied
        version (int): Version of the desired-properties patch the value was applied under
        code (int): Status code of the acknowledgement
        description (str): Human readable description

    Root acknowledgements are keyed by property.  Component acknowledgements are wrapped in an envelope keyed by the component name and tagged with the component marker.

    '''
    component, _, property = key.rpartition('.')
    patch = { property: { 'value': value, 'ac': code, 'av': version, 'ad': description } }
    if component:
        patch[COMPONENTMARKER] = COMPONENTTAG
        patch = { component: patch }
    return patch


class Transport(object):
    ''' A transport connects the agent to the twin service.  Subclass it to support a particular cloud service.

    Outbound calls may raise any exception.  The agent logs the failure and tries again on the next cycle.

    Inbound events are delivered through the two callbacks given to connect.  They may be called on the transport's own threads and concurrently with the agent loop.

    '''

    def provision(self):
        ''' Obtain the identity and credentials needed to connect.  Raise to abort startup '''
        pass

    def connect(self, onDesired, onCommand):
        ''' Open the connection to the service

        Args:
            onDesired (callable): Called with (patch, version) when desired properties change
            onCommand (callable): Called with (name, rawParams) when a command arrives.  Returns a :obj:`CommandResponse` to send back.

        '''
        raise NotImplementedError

    def close(self):
        pass

    def sendTelemetryMessage(self, payload, componentName=None):
        ''' Send one framed telemetry message attributed to componentName (None for the root) '''
        raise NotImplementedError

    def updateReported(self, patch):
        ''' Merge patch into the reported properties held by the service '''
        raise NotImplementedError

    def getDesired(self):
        ''' Returns the current desired properties as (patch, version), or None if the service has none '''
        return None

    def pushFullProperties(self, snapshot):
        self.updateReported(snapshot)

    def sendPropertyAck(self, key, value, version, code, description):
        self.updateReported(ackEnvelope(key, value, version, code, description))


class ShadowTransport(Transport):
    ''' Connects to an AWS IOT-Core device shadow

        Args:
            endpoint (`str`): URL of the IOT-Core endpoint assigned.  This is provided by the AWS IOT-Core service
            thingName (`str`): The name of your IOT device.  Must be globally unique within your AWS account
            rootCAPath (`str`): Path to the file which holds a valid AWS root certificate
            certificatePath (`str`): Path to the file which holds the certificate for your IOT device.  Received from AWS IOT-Core during device creation
            privateKeyPath (`str`): Path to the file which holds the private key for your IOT device.  Received from AWS IOT-Core during device creation
            port (`int`, optional): MQTT port.  Default is 8883
            timeout (`float`, optional): Seconds to wait for shadow requests.  Default is 5

        Telemetry is published to `dt/<thingName>/telemetry` for the root and `dt/<thingName>/<component>/telemetry` for a named component.  Commands are received on `cmd/<thingName>/<command>` and answered on `cmd/<thingName>/<command>/response`.

    '''
    _logger = logging.getLogger(__name__)

    def __init__(self, endpoint=None, thingName=None, rootCAPath=None, certificatePath=None, privateKeyPath=None, port=8883, timeout=5):
        self._endpoint = endpoint
        self._thingName = thingName
        self._rootCAPath = rootCAPath
        self._certificatePath = certificatePath
        self._privateKeyPath = privateKeyPath
        self._port = int(port)
        self._timeout = timeout

        self._client = None
        self._shadowHandler = None
        self._mqtt = None
        self._onDesired = None
        self._onCommand = None

    @classmethod
    def fromConfig(cls, config):
        ''' Create a transport from the `Provisioning` section of a :obj:`Configuration` '''
        section = config.section('Provisioning')
        return cls(endpoint=section.get('endpoint'), thingName=section.get('thingName'), rootCAPath=section.get('rootCAPath'), certificatePath=section.get('certificatePath'), privateKeyPath=section.get('privateKeyPath'), port=section.get('port', 8883), timeout=float(section.get('timeout', 5)))

    def provision(self):
        for key, value in (('endpoint', self._endpoint), ('thingName', self._thingName)):
            if not value:
                raise ApplicationError('Failed. Please supply Provisioning:{0} in configuration'.format(key))
        for key, path in (('rootCAPath', self._rootCAPath), ('certificatePath', self._certificatePath), ('privateKeyPath', self._privateKeyPath)):
            if not path or not os.path.isfile(path):
                raise ApplicationError('Failed. Provisioning:{0} does not name a readable file ({1})'.format(key, path))
        self._logger.info('Provisioning: OK. Device {0} on {1}'.format(self._thingName, self._endpoint))

    def connect(self, onDesired, onCommand):
        ''' Establish connection to the AWS IOT service '''
        self._onDesired = onDesired
        self._onCommand = onCommand

        # Init AWSIoTMQTTShadowClient
        self._client = AWSIoTMQTTShadowClient(self._thingName)
        self._client.configureEndpoint(self._endpoint, self._port)
        self._client.configureCredentials(self._rootCAPath, self._privateKeyPath, self._certificatePath)

        # AWSIoTMQTTShadowClient configuration
        self._client.configureAutoReconnectBackoffTime(1, 32, 20)
        self._client.configureConnectDisconnectTimeout(10)
        self._client.configureMQTTOperationTimeout(self._timeout)

        # Connect to AWS IoT
        self._client.connect()

        # Create a deviceShadow with persistent subscription
        self._shadowHandler = self._client.createShadowHandlerWithName(self._thingName, True)

        # Listen on deltas
        self._shadowHandler.shadowRegisterDeltaCallback(self._deltaCallback)

        # Listen for commands
        self._mqtt = self._client.getMQTTConnection()
        self._mqtt.subscribe('cmd/{0}/+'.format(self._thingName), 1, self._commandCallback)

        self._logger.info('Connection: OK. {0} on {1}:{2}'.format(self._thingName, self._endpoint, self._port))

    def close(self):
        if self._client is not None:
            self._client.disconnect()
            self._client = None

    def sendTelemetryMessage(self, payload, componentName=None):
        if componentName:
            topic = 'dt/{0}/{1}/telemetry'.format(self._thingName, componentName)
        else:
            topic = 'dt/{0}/telemetry'.format(self._thingName)
        if not self._mqtt.publish(topic, payload, 0):
            raise ApplicationError('Telemetry publish to {0} failed'.format(topic))

    def updateReported(self, patch):
        ''' Update the reported state of the shadow and wait for the service to answer.  Raises :obj:`ApplicationError` unless the update was accepted '''
        done = Event()
        result = {}

        def updateCallback(payload, responseStatus, token):
            self._updateCallback(payload, responseStatus, token)
            result['status'] = responseStatus
            done.set()

        payload = json.dumps({ 'state': { 'reported': patch } })
        self._shadowHandler.shadowUpdate(payload, updateCallback, self._timeout)
        if not done.wait(self._timeout + 1):
            raise ApplicationError('Shadow update request timed out')
        if result['status'] != 'accepted':
            raise ApplicationError('Shadow update request {0}'.format(result['status']))

    def getDesired(self):
        done = Event()
        result = {}

        def getCallback(payload, responseStatus, token):
            result['status'] = responseStatus
            result['payload'] = payload
            done.set()

        self._shadowHandler.shadowGet(getCallback, self._timeout)
        if not done.wait(self._timeout + 1):
            raise ApplicationError('Shadow get request timed out')

        if result['status'] != 'accepted':
            # A thing with no shadow document yet has nothing desired
            self._logger.warning('Shadow get request {0}'.format(result['status']))
            return None

        payloadDict = json.loads(result['payload'])
        desired = payloadDict.get('state', {}).get('desired')
        if not desired:
            return None
        return (desired, payloadDict.get('version', 0))

    def _updateCallback(self, payload, responseStatus, token):
        ''' Log result when a request has been made to update the IOT shadow '''
        if responseStatus == 'accepted':
            self._logger.debug('Update request {0} accepted'.format(token))
            return

        self._logger.warning({
            'timeout': 'Update request {0} timed out!'.format(token),
            'rejected': 'Update request {0} was rejected!'.format(token)
        }.get(responseStatus, 'Update request {0} contained unexpected response status {1}'.format(token, responseStatus)))

    def _deltaCallback(self, payload, responseStatus, token):
        ''' Receive a delta message from the IOT service and forward it as a desired-properties patch '''
        self._logger.debug('Delta message received with content: {0}'.format(payload))
        try:
            payloadDict = json.loads(payload)
        except ValueError as e:
            self._logger.error('Delta message could not be decoded: {0}'.format(e))
            return

        self._onDesired(payloadDict.get('state', {}), payloadDict.get('version', 0))

    def _commandCallback(self, client, userdata, message):
        ''' Receive a command message and publish the response '''
        name = message.topic.split('/', 2)[-1]
        response = self._onCommand(name, message.payload)
        body = json.dumps({ 'status': response.status, 'payload': json.loads(response.payload.decode('utf-8')) })
        self._mqtt.publish('{0}/response'.format(message.topic), body, 1)
