"""
WireGuard peer provisioner

Enrollment, address assignment and credential lifecycle for the peers of
a WireGuard interface.
"""

__version__ = "1.0.0"
