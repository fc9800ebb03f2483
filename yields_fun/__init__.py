#!/usr/bin/env python3
"""yields-fun: Solana DeFi yield discovery, trust evaluation and position management."""

__version__ = "0.1.0"
