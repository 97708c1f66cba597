# -*- coding: utf-8 -*-
import logging

_logger = logging.getLogger(__name__)

ROOTSECTION = 'Root'

def loadInitialState(root, config, version=None):
    ''' Apply the `InitialState` section of the configuration to the device model.

    The `Root` sub-section is applied to the root component and every sub-section named after a registered component is applied to that component.  Sections that match nothing are ignored so that one configuration can cover optional hardware.

    Args:
        root (:obj:`RootComponent`): The device model
        config (:obj:`Configuration`): The configuration source
        version (str, optional): Software build version.  If provided, it is passed to the root as the `Version` initial state key.

    Returns:
        The number of keys applied

    '''
    try:
        numkeys = 0
        initialstate = config.section('InitialState')
        if initialstate.exists():
            section = initialstate.section(ROOTSECTION)
            if section.exists():
                values = section.children()
                root.setInitialState(values)
                numkeys += len(values)

            for name, component in root.components().items():
                section = initialstate.section(name)
                if section.exists():
                    values = section.children()
                    component.setInitialState(values)
                    numkeys += len(values)

            _logger.info('Initial State: OK Applied {0} keys'.format(numkeys))
        else:
            _logger.warning('Initial State: Not specified')

        if version is not None:
            root.setInitialState({ 'Version': version })
    except Exception as e:
        _logger.critical('Initial State: Failed {0}'.format(e))
        raise

    return numkeys
