"""
StaffGate: identity, access control and activity auditing for platform staff.
"""

__version__ = "1.0.0"
