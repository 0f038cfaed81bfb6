"""
Interpreter systems for handheld calculator hosts.
"""
# Import the factory for creating system instances
from .system_factory import SystemFactory
