#!/usr/bin/env python3
"""
Agent wallet: keypair loading and balance summary.

The keypair is read from WALLET_SECRET_KEY (base58) or derived from
WALLET_SECRET_SALT and the agent id with PBKDF2. Signing stays with the
sidecars; the keypair is only used to resolve and verify the agent address.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from yields_fun.config import AGENT_ID
from yields_fun.errors import ConfigError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.runtime import resolve_wallet
from yields_fun.services.types import safe_float
from .birdeye import BirdeyeClient, items

logger = logging.getLogger("yields_fun.wallet")

LAMPORTS_PER_SOL = 1_000_000_000
PBKDF2_ITERATIONS = 100_000
SEED_LENGTH = 32


def derive_seed(secret_salt: str, agent_id: str = AGENT_ID) -> bytes:
    """32-byte ed25519 seed from the wallet salt and agent id."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=SEED_LENGTH,
        salt=agent_id.encode(),
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret_salt.encode())


def load_agent_keypair(get_setting: Callable[[str], Optional[str]]) -> Keypair:
    """
    Resolve the agent keypair from settings.

    Raises:
        ConfigError: no key material, or the derived key does not match
            WALLET_PUBLIC_KEY
    """
    secret_key = get_setting("WALLET_SECRET_KEY")
    secret_salt = get_setting("WALLET_SECRET_SALT")
    expected = get_setting("WALLET_PUBLIC_KEY")

    if secret_key:
        try:
            keypair = Keypair.from_base58_string(secret_key)
        except ValueError as e:
            raise ConfigError(f"WALLET_SECRET_KEY is not a valid base58 keypair: {e}") from e
    elif secret_salt:
        agent_id = get_setting("AGENT_ID") or AGENT_ID
        keypair = Keypair.from_seed(derive_seed(secret_salt, agent_id))
    else:
        raise ConfigError("Either WALLET_SECRET_KEY or WALLET_SECRET_SALT is required")

    if expected and str(keypair.pubkey()) != expected:
        raise ConfigError("Keypair verification failed - pubkey mismatch")

    logger.info(f"[Wallet] Agent keypair loaded: {keypair.pubkey()}")
    return keypair


class AgentWalletProvider:
    """SOL balance via RPC and token holdings via Birdeye."""

    def __init__(self, rpc_client: Client, birdeye: Optional[BirdeyeClient] = None):
        self.rpc_client = rpc_client
        self.birdeye = birdeye

    def get_sol_balance(self, pubkey: str) -> float:
        response = self.rpc_client.get_balance(Pubkey.from_string(pubkey))
        return response.value / LAMPORTS_PER_SOL

    def get_wallet_tokens(self, pubkey: str) -> List[Dict[str, Any]]:
        if self.birdeye is None:
            return []
        return items(self.birdeye.get_wallet_tokens(pubkey))

    def get_summary(self, pubkey: str) -> Dict[str, Any]:
        tokens = self.get_wallet_tokens(pubkey)
        return {
            'address': pubkey,
            'solBalance': self.get_sol_balance(pubkey),
            'tokens': tokens,
            'totalUsd': sum(safe_float(t.get('valueUsd')) for t in tokens),
        }

    def get_formatted_report(self, pubkey: str) -> str:
        summary = self.get_summary(pubkey)
        report = "🏦 Agent Wallet Report\n\n"
        report += f"Address: {summary['address']}\n"
        report += f"SOL Balance: {summary['solBalance']:.4f}\n"
        if summary['tokens']:
            report += f"Token Value: ${summary['totalUsd']:,.2f}\n\n"
            report += "Holdings:\n"
            for token in summary['tokens'][:10]:
                symbol = token.get('symbol') or token.get('address', '?')
                report += f"- {symbol}: {safe_float(token.get('uiAmount')):,.4f} (${safe_float(token.get('valueUsd')):,.2f})\n"
        return report


def _agent_wallet_report(runtime, message, state=None) -> str:
    wallet = resolve_wallet(runtime, state)
    if not wallet:
        return "Wallet public key not configured"
    try:
        api_key = runtime.get_setting("BIRDEYE_API_KEY")
        birdeye = BirdeyeClient(api_key) if api_key else None
        rpc_url = runtime.get_setting("RPC_URL")
        provider = AgentWalletProvider(Client(rpc_url), birdeye)
        return provider.get_formatted_report(wallet)
    except Exception as e:
        logger.error(f"[Wallet] Error in agent wallet provider: {e}")
        return "Unable to fetch wallet information. Please try again later."


agent_wallet_provider = PluginEntry(
    name='agentWallet',
    kind='provider',
    description='Agent wallet balances and token holdings',
    handler=_agent_wallet_report,
)
