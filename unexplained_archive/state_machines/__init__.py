"""
State machines package.
"""
