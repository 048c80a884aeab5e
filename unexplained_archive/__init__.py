"""
Unexplained Archive case lifecycle and escrow coordinator.
"""
__version__ = "1.0.0"
