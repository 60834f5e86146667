"""
SideQuests context engine.

This package contains the contextual prompt-selection engine: pack loading,
home presence tracking, solar day-phase classification and the selector that
combines them into the next side quest to show.
"""
import logging

# Applications using this package should configure their own logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

VERSION = "0.1.0"
