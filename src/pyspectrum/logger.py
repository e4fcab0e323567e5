"""Package logger for PySpectrum.

Messages go to stdout at INFO and above. Module loggers are children of
``pyspectrum`` so one level setting controls the whole package.
"""

import logging
import sys

PACKAGE = 'pyspectrum'

logger = logging.getLogger(PACKAGE)
logger.setLevel(logging.DEBUG)

if not logger.handlers:
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setLevel(logging.INFO)
    _handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        datefmt='%H:%M:%S',
    ))
    logger.addHandler(_handler)


def get_logger(name: str = None):
    """Logger for a PySpectrum module.

    ``name`` is usually ``__name__``; a leading ``pyspectrum.`` is accepted
    but not required. Without a name the package logger is returned.
    """
    if not name:
        return logger
    if not name.startswith(PACKAGE + '.'):
        name = f'{PACKAGE}.{name}'
    return logging.getLogger(name)
