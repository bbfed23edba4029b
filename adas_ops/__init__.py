"""ADAS Ops - scrub reconciliation, notice routing and RO job state"""

__version__ = "1.0.0"
