# -*- coding: utf-8 -*-
import platform
import shutil
import os

from pyTwin.Component import Component

class DeviceInformation(Component):
    ''' Standard component describing the device this code is running on.

    Manufacturer, model and software version come from the constructor or from initial state (keys `manufacturer`, `model` and `swVersion`).  The remaining properties are read from the host each time properties are requested.

    '''
    dtmi = 'dtmi:azure:DeviceManagement:DeviceInformation;1'

    def __init__(self, name=None, manufacturer=None, model=None, swVersion=None):
        super(DeviceInformation, self).__init__(name)
        self.properties.update({ 'manufacturer': manufacturer, 'model': model, 'swVersion': swVersion })

    def getProperties(self):
        properties = super(DeviceInformation, self).getProperties()
        properties.update({
            'osName': '{0} {1}'.format(platform.system(), platform.release()).strip() or None,
            'processorArchitecture': platform.machine() or None,
            'totalStorage': self._availableStorageKB(),
            'totalMemory': self._totalMemoryKB()
        })
        return properties

    def setInitialState(self, values):
        for k in ('manufacturer', 'model', 'swVersion'):
            if k in values:
                self.updateProperty(k, values[k])

    @staticmethod
    def _availableStorageKB():
        try:
            return shutil.disk_usage(os.path.abspath(os.sep)).free / 1024.0
        except OSError:
            return None

    @staticmethod
    def _totalMemoryKB():
        # sysconf is only available on POSIX hosts
        if not hasattr(os, 'sysconf'):
            return None
        try:
            return os.sysconf('SC_PAGE_SIZE') * os.sysconf('SC_PHYS_PAGES') / 1024.0
        except (ValueError, OSError):
            return None
