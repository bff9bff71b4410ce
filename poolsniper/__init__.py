"""
Pool Sniper
Watches Raydium for freshly created pools and trades them automatically
"""

__version__ = "0.1.0"
