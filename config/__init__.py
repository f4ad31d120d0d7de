"""
Configuration: constants, settings and logging for the revision pipeline.
"""
from .constants import *
from .logging_config import ROOT_LOGGER_NAME, setup_logger, get_logger, logger

__all__ = [
    'ROOT_LOGGER_NAME',
    'setup_logger',
    'get_logger',
    'logger',
]
