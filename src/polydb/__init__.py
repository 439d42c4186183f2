"""
polydb - one Capability Contract over relational, document, key-value
and search databases.
"""

__version__ = "0.1.0"

from polydb.core import *  # noqa
