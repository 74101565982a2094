"""DeathCast Market - mortality prediction wagering service."""

__version__ = "0.1.0"
