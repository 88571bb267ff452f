"""
MarketPilot — Resilient prediction-market trading core.

Resolves markets on Polymarket and Kalshi, assesses wallet exposure and
builds straddle / ladder order plans, with every outbound call running
under bounded retry and provider failover.
"""

__version__ = "0.1.0"
