# src/reallocator/__init__.py
"""
Reallocator: reclaims nodes launched for a Provisioner once they fail to
join, sit empty past their TTL, or outlive their maximum age.
"""

__version__ = "0.3.0"
