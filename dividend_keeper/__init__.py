"""
Dividend Keeper

A stateless keeper job for the captain pools that provides:
- Incremental PayLoot event scanning with checkpointed progress
- Exact two-currency income accounting per captain role
- Daily dailyDivide settlement with crash-safe replay
"""

__version__ = "0.1.0"
__author__ = "Dividend Keeper Team"
