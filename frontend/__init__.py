"""
Frontend module for AB Loop Player.

Contains all UI components built with CustomTkinter.
Each component is a separate class for easy modification and testing.
"""

from .app import ABLoopApp

__all__ = ['ABLoopApp']
