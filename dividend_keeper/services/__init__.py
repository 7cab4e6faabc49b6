"""
Keeper services: chain gateway, event parsing, ledgers and checkpoints.
"""
