"""
DeviceHub: device identity resolution and scoped authorization API.
"""

__version__ = "0.1.0"
