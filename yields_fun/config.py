#!/usr/bin/env python3
"""Configuration module for the yields-fun plugin."""
import os
import logging
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv

from yields_fun.errors import ConfigError

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv(os.path.join(BASE_DIR, '.env'))
load_dotenv()

# Solana RPC
DEFAULT_RPC = "https://api.mainnet-beta.solana.com"
RPC_URL = os.getenv("RPC_URL", DEFAULT_RPC)

# Agent wallet
WALLET_PUBLIC_KEY = os.getenv("WALLET_PUBLIC_KEY", "")
WALLET_SECRET_KEY = os.getenv("WALLET_SECRET_KEY", "")
WALLET_SECRET_SALT = os.getenv("WALLET_SECRET_SALT", "")
AGENT_ID = os.getenv("AGENT_ID", "yields-fun")

# API Keys
BIRDEYE_API_KEY = os.getenv("BIRDEYE_API_KEY", "")
FLEXLEND_API_KEY = os.getenv("FLEXLEND_API_KEY", "")
OX_API_KEY = os.getenv("OX_API_KEY", "")
OX_API_SECRET = os.getenv("OX_API_SECRET", "")
OX_TESTNET = os.getenv("OX_TESTNET", "false").lower() in ("1", "true", "yes")

# Transaction-building sidecars (Node.js SDK wrappers)
RAYDIUM_SIDECAR_URL = os.getenv("RAYDIUM_SIDECAR_URL", "http://localhost:5006")
ORCA_SIDECAR_URL = os.getenv("ORCA_SIDECAR_URL", "http://localhost:5003")
METEORA_SIDECAR_URL = os.getenv("METEORA_SIDECAR_URL", "http://localhost:5002")

# Upstream APIs
RAYDIUM_API_BASE = "https://api-v3.raydium.io"
ORCA_API_BASE = "https://api.orca.so"
METEORA_API_BASE = "https://api.meteora.ag/v1"
BIRDEYE_API_BASE = "https://public-api.birdeye.so"
DEXSCREENER_API_BASE = "https://api.dexscreener.com/latest/dex"
FLEXLEND_API_BASE = "https://api.flexlend.fi"
OX_API_BASE = "https://api.ox.fun"
OX_TESTNET_API_BASE = "https://stgapi.ox.fun"

# Persistent cache tier
YIELDS_CACHE_URL = os.getenv("YIELDS_CACHE_URL", f"sqlite:///{os.path.join(os.getcwd(), 'yields_fun_cache.db')}")

# Tuning
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "300"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", "2.0"))
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "15"))
POOL_CHECK_INTERVAL_SECONDS = int(os.getenv("POOL_CHECK_INTERVAL_SECONDS", "300"))
LULO_PRIORITY_FEE = int(os.getenv("LULO_PRIORITY_FEE", "50000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '[%(asctime)s.%(msecs)03d] [%(levelname)s] %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Common mints
SOL_MINT = 'So11111111111111111111111111111111111111112'
USDC_MINT = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'
USDT_MINT = 'Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB'

_logging_configured = False


def configure_logging(level: Optional[str] = None):
    """Configure root logging once for CLI and job use."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    _logging_configured = True


def get_settings() -> Dict[str, str]:
    """Snapshot of the runtime-visible settings."""
    return {
        'RPC_URL': RPC_URL,
        'WALLET_PUBLIC_KEY': WALLET_PUBLIC_KEY,
        'WALLET_SECRET_KEY': WALLET_SECRET_KEY,
        'WALLET_SECRET_SALT': WALLET_SECRET_SALT,
        'AGENT_ID': AGENT_ID,
        'BIRDEYE_API_KEY': BIRDEYE_API_KEY,
        'FLEXLEND_API_KEY': FLEXLEND_API_KEY,
        'OX_API_KEY': OX_API_KEY,
        'OX_API_SECRET': OX_API_SECRET,
        'OX_TESTNET': 'true' if OX_TESTNET else 'false',
        'RAYDIUM_SIDECAR_URL': RAYDIUM_SIDECAR_URL,
        'ORCA_SIDECAR_URL': ORCA_SIDECAR_URL,
        'METEORA_SIDECAR_URL': METEORA_SIDECAR_URL,
        'YIELDS_CACHE_URL': YIELDS_CACHE_URL,
        'LOG_LEVEL': LOG_LEVEL,
    }


def validate_config(get_setting: Callable[[str], Optional[str]]) -> Dict[str, str]:
    """
    Validate wallet and RPC settings needed by the action layer.

    Either WALLET_SECRET_KEY + WALLET_PUBLIC_KEY or WALLET_SECRET_SALT must be
    present, plus RPC_URL.

    Raises:
        ConfigError listing every problem found
    """
    values = {
        key: get_setting(key) or ''
        for key in ('WALLET_SECRET_SALT', 'WALLET_SECRET_KEY', 'WALLET_PUBLIC_KEY', 'RPC_URL')
    }

    problems: List[str] = []
    has_keypair = values['WALLET_SECRET_KEY'] and values['WALLET_PUBLIC_KEY']
    if not has_keypair and not values['WALLET_SECRET_SALT']:
        if not values['WALLET_SECRET_KEY']:
            problems.append("WALLET_SECRET_KEY: Wallet secret key is required")
        if not values['WALLET_PUBLIC_KEY']:
            problems.append("WALLET_PUBLIC_KEY: Wallet public key is required")
        problems.append("WALLET_SECRET_SALT: Wallet secret salt is required")
    if not values['RPC_URL']:
        problems.append("RPC_URL: RPC URL is required")

    if problems:
        raise ConfigError("Yields Fun configuration validation failed:\n" + "\n".join(problems))
    return values
