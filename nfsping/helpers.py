'''

This file contains helper functions and exceptions used throughout nfsping

'''

import logging

class FatalError(Exception):
    '''Local configuration or environment problem, stops the whole run.'''
    pass

class ConfigurationError(FatalError):
    pass

class UnsupportedProtocolError(ConfigurationError):
    pass

class SocketCreateError(FatalError):
    pass

class BindError(FatalError):
    pass

class PortExhaustedError(BindError):
    pass

class ResolveError(Exception):
    pass

class ConnectError(Exception):
    '''Could not reach one target; the run carries on with the others.'''
    pass

class PortmapError(ConnectError):
    pass

class ServiceNotRegisteredError(PortmapError):
    pass

def get_child_logger(logger, name):
    '''
        Get a descendant of an existing Logger.

        Args:
            logger (Logger): Parent logger to create descendant of
            name (str): Name to append to parent's name

        Returns:
            Logger: new Logger with `name` appended
    '''
    return logging.getLogger('{0}.{1}'.format(logger.name, name))

def default_logger(name, mode_debug = False, mode_verbose = False):
    '''
        Build a standalone logger for components created without one.

        Args:
            name (str): Logger name
            mode_debug (bool): log at DEBUG
            mode_verbose (bool): log at INFO

        Returns:
            Logger: configured logger
    '''
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    set_log_level(logger, mode_debug, mode_verbose)
    return logger

def set_log_level(logger, mode_debug = False, mode_verbose = False):
    if mode_debug:
        logger.setLevel(logging.DEBUG)
    elif mode_verbose:
        logger.setLevel(logging.INFO)
    else:
        logger.setLevel(logging.WARN)

def reverse_fqdn(fqdn):
    '''
        Reverse the labels of a dotted name, for metric paths.

        www.test.com becomes com.test.www
    '''
    return '.'.join(reversed([label for label in fqdn.split('.') if label]))

def ns2us(ns):
    '''Nanoseconds to whole microseconds, truncating.'''
    return ns // 1000

def us2ms(us):
    return us / 1000.0

def ms2s(ms):
    return ms / 1000.0
