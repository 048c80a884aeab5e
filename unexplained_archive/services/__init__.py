"""
unexplained_archive/services/__init__.py
Coordinators over the managed backend. Each service is a class of async
methods taking the backend client first.
"""
