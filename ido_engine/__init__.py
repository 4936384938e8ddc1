"""
Curve-priced primary issuance engine
"""

__version__ = "0.1.0"
