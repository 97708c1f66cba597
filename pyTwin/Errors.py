# -*- coding: utf-8 -*-

class ApplicationError(Exception):
    ''' A soft, expected failure.  Logged with its message only and the agent carries on '''


class AggregateError(Exception):
    ''' Several independent failures raised together so that each can be reported

    Args:
        message (str): Summary of the operation that failed
        errors (`list` of :obj:`Exception`): The individual causes

    '''
    def __init__(self, message, errors):
        super(AggregateError, self).__init__(message)
        self.errors = list(errors)


class UnknownProperty(ApplicationError):
    pass


class UnknownCommand(ApplicationError):
    pass


class UnknownComponent(ApplicationError):
    pass


class AmbiguousComponent(ApplicationError):
    pass
