"""
realmctl - Command-line controller for a port-forwarding panel.

Lists, adds, removes and bulk-imports forwarding rules on a remote panel
and controls the forwarding service behind it.
"""

__version__ = "1.0.0"
__author__ = "realmctl maintainers"
