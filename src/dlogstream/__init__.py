"""dlogstream — live device log capture over sdb and SSH."""

__version__ = "0.1.0"
