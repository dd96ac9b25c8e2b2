"""
Benefit Rules Engine

Versioned, checksum-verified rule packages for government benefit programs,
and the decision pipeline that evaluates them against a household profile.
"""

__version__ = "1.0.0"
__author__ = "Benefit Rules Team"
__description__ = "Rule package management and eligibility decision engine"
