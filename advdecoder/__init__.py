"""Decode BLE advertisement data against user-supplied device definitions."""

__version__ = "0.1.0"
__all__ = ["decoder", "matching"]