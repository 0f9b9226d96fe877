"""
housesplit - Source Package

A settlement engine for households sharing monthly expenses among a
small, fixed group of members.

DESIGN PRINCIPLES:
1. Balances are always recomputed from snapshots, never cached
2. Validate before admitting, skip what slipped through
3. No silent corrections of share data
4. Only confirmed payments move net balances
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "housesplit maintainers"
