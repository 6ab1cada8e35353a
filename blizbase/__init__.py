"""Blizbase.

Single-process guild roster mirror with two periodic convergence loops:
 - roster sync: Battle.net guild roster + character profiles -> local SQLite store
 - self-update: registry manifest digest vs local image -> pull + container restart
"""

__version__ = "0.1.0"
