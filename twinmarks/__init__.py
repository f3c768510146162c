"""
twinmarks - personal semantic index over saved web pages.
"""

__version__ = "1.0.0"
