#!/usr/bin/env python3
"""
LuLo (Flexlend) deposit and withdraw actions.

The Flexlend API returns unsigned, base64 transactions per underlying
protocol; signing happens in the agent's wallet.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from yields_fun.config import FLEXLEND_API_BASE, LULO_PRIORITY_FEE, SOL_MINT, USDC_MINT, USDT_MINT
from yields_fun.errors import ActionError, FetchError
from yields_fun.plugin_registry import PluginEntry
from yields_fun.services.http_client import build_session, fetch_with_retry
from yields_fun.services.types import safe_float

logger = logging.getLogger("yields_fun.lulo")

PYUSD_MINT = '2b1kV6DkPAnxd5ixfnxCpjxmKwqjjaYmCZfHsFu24GXo'

SUPPORTED_TOKENS = {
    'USDC': USDC_MINT,
    'USDT': USDT_MINT,
    'SOL': SOL_MINT,
    'PYUSD': PYUSD_MINT,
}


def resolve_mint(token: Optional[str]) -> Optional[str]:
    """Mint for a supported symbol or mint address, else None."""
    if not token:
        return None
    symbol = str(token).upper()
    if symbol in SUPPORTED_TOKENS:
        return SUPPORTED_TOKENS[symbol]
    return token if token in SUPPORTED_TOKENS.values() else None


@dataclass
class LuloTransactionMeta:
    transaction: str        # base64 serialized transaction
    protocol: str
    total_deposit: float

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'LuloTransactionMeta':
        return cls(
            transaction=data.get('transaction', ''),
            protocol=data.get('protocol', ''),
            total_deposit=safe_float(data.get('totalDeposit')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transaction': self.transaction,
            'protocol': self.protocol,
            'totalDeposit': self.total_deposit,
        }


class LuloActions:
    def __init__(self, api_key: str, session: Optional[requests.Session] = None,
                 api_base: str = FLEXLEND_API_BASE, priority_fee: int = LULO_PRIORITY_FEE):
        self.api_key = api_key
        self.session = session or build_session({'Content-Type': 'application/json'})
        self.api_base = api_base.rstrip('/')
        self.priority_fee = priority_fee

    def _generate(self, path: str, owner: str, body: Dict[str, Any]) -> List[LuloTransactionMeta]:
        response = fetch_with_retry(
            self.session,
            'POST',
            f"{self.api_base}{path}",
            params={'priorityFee': self.priority_fee},
            headers={'x-wallet-pubkey': owner, 'x-api-key': self.api_key},
            json=body,
        )
        metas = ((response or {}).get('data') or {}).get('transactionMeta') or []
        return [LuloTransactionMeta.from_api(m) for m in metas]

    def generate_deposit_transaction(self, owner: str, mint_address: str, deposit_amount: str,
                                     allowed_protocols: Optional[str] = None) -> List[LuloTransactionMeta]:
        return self._generate('/generate/account/deposit', owner, {
            'owner': owner,
            'mintAddress': mint_address,
            'depositAmount': str(deposit_amount),
            'allowedProtocols': allowed_protocols,
        })

    def generate_withdraw_transaction(self, owner: str, mint_address: str,
                                      amount: str) -> List[LuloTransactionMeta]:
        """``amount == 'all'`` withdraws the full balance."""
        withdraw_all = str(amount).lower() == 'all'
        return self._generate('/generate/account/withdraw', owner, {
            'owner': owner,
            'mintAddress': mint_address,
            'withdrawAmount': "0" if withdraw_all else str(amount),
            'withdrawAll': withdraw_all,
        })


def format_transactions(header: str, metas: List[LuloTransactionMeta]) -> str:
    lines = [f"- {m.protocol}: ${m.total_deposit:,.2f}" for m in metas]
    return header + "\n" + "\n".join(lines)


def _validate_deposit(runtime, message, state=None) -> bool:
    if not message:
        return False
    return safe_float(message.get('amount')) > 0 and resolve_mint(message.get('token')) is not None


def _validate_withdraw(runtime, message, state=None) -> bool:
    if not message or resolve_mint(message.get('token')) is None:
        return False
    amount = message.get('amount')
    return str(amount).lower() == 'all' or safe_float(amount) > 0


def _actions_for(runtime) -> Optional[LuloActions]:
    api_key = runtime.get_setting("FLEXLEND_API_KEY")
    return LuloActions(api_key) if api_key else None


def _deposit(runtime, message, state=None) -> str:
    actions = _actions_for(runtime)
    if actions is None:
        return "LuLo API key not configured"
    if not _validate_deposit(runtime, message):
        return "Invalid deposit parameters: amount must be positive and token one of USDC, USDT, SOL, PYUSD"
    try:
        owner = runtime.get_setting("WALLET_PUBLIC_KEY")
        if not owner:
            raise ActionError("WALLET_PUBLIC_KEY is not configured")
        amount = message.get('amount')
        metas = actions.generate_deposit_transaction(
            owner, resolve_mint(message.get('token')), amount, message.get('protocols'),
        )
        logger.info(f"[LuLo] Generated {len(metas)} deposit transaction(s) for {amount}")
        return format_transactions(f"Generated deposit transactions for {amount} to LuLo:", metas)
    except (ActionError, FetchError) as e:
        logger.error(f"[LuLo] Error in LuLo deposit action: {e}")
        return "Failed to generate deposit transaction"


def _withdraw(runtime, message, state=None) -> str:
    actions = _actions_for(runtime)
    if actions is None:
        return "LuLo API key not configured"
    if not _validate_withdraw(runtime, message):
        return "Invalid withdraw parameters: amount must be positive or 'all' and token one of USDC, USDT, SOL, PYUSD"
    try:
        owner = runtime.get_setting("WALLET_PUBLIC_KEY")
        if not owner:
            raise ActionError("WALLET_PUBLIC_KEY is not configured")
        metas = actions.generate_withdraw_transaction(
            owner, resolve_mint(message.get('token')), message.get('amount'),
        )
        logger.info(f"[LuLo] Generated {len(metas)} withdraw transaction(s)")
        return format_transactions("Generated withdraw transactions from LuLo:", metas)
    except (ActionError, FetchError) as e:
        logger.error(f"[LuLo] Error in LuLo withdraw action: {e}")
        return "Failed to generate withdraw transaction"


deposit_lulo_action = PluginEntry(
    name='DEPOSIT_LULO',
    kind='action',
    description='Deposit funds into LuLo for yield farming',
    handler=_deposit,
    similes=('LULO_DEPOSIT', 'LEND_ON_LULO'),
    validate=_validate_deposit,
    examples=[{'user': '{{user1}}', 'content': {'text': 'Deposit 100 USDC into LuLo', 'amount': '100', 'token': 'USDC'}}],
)

withdraw_lulo_action = PluginEntry(
    name='WITHDRAW_LULO',
    kind='action',
    description='Withdraw funds from LuLo yield farming',
    handler=_withdraw,
    similes=('LULO_WITHDRAW',),
    validate=_validate_withdraw,
    examples=[{'user': '{{user1}}', 'content': {'text': 'Withdraw all USDC from LuLo', 'amount': 'all', 'token': 'USDC'}}],
)
