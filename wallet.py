import logging
from collections import namedtuple
from collections.abc import Mapping

from web3 import Web3

from models import WalletSession

logger = logging.getLogger(__name__)

NO_WALLET_MESSAGE = 'No EVM wallet found. Please install MetaMask or another wallet.'

# (vendor flag, display name), checked in this order
KNOWN_WALLETS = (
    ('isMetaMask', 'MetaMask'),
    ('isPhantom', 'Phantom'),
    ('isCoinbaseWallet', 'Coinbase Wallet'),
)

WalletProvider = namedtuple('WalletProvider', ['name', 'handle'])


class WalletError(Exception):
    pass


def _flag(obj, name):
    if isinstance(obj, Mapping):
        return bool(obj.get(name))
    return bool(getattr(obj, name, False))


class InjectedProviderSource:
    """Reads vendor flags off an injected EIP-1193 provider object.

    A wallet that injects several providers exposes them as ``providers``;
    otherwise the injected object itself is the only candidate.
    """

    def __init__(self, ethereum):
        self.ethereum = ethereum

    def discover(self):
        if not self.ethereum:
            return []
        if isinstance(self.ethereum, Mapping):
            candidates = self.ethereum.get('providers')
        else:
            candidates = getattr(self.ethereum, 'providers', None)
        if not candidates:
            candidates = [self.ethereum]

        wallets = []
        for provider in candidates:
            for flag, name in KNOWN_WALLETS:
                if _flag(provider, flag):
                    wallets.append(WalletProvider(name, provider))
        return wallets


class EndpointProviderSource:
    """One HTTP provider per configured (name, uri) pair."""

    def __init__(self, endpoints):
        self.endpoints = endpoints

    def discover(self):
        return [WalletProvider(name, Web3.HTTPProvider(uri)) for name, uri in self.endpoints]


class WalletConnector:
    def __init__(self, source, web3_factory=Web3):
        self.source = source
        self.web3_factory = web3_factory

    def discover(self):
        """Distinct named providers; the first provider wins a name."""
        seen = set()
        wallets = []
        for wallet in self.source.discover():
            if wallet.name in seen:
                continue
            seen.add(wallet.name)
            wallets.append(wallet)
        return wallets

    def request_connection(self):
        wallets = self.discover()
        if not wallets:
            logger.warning('Connect requested but no wallet provider was found')
            return {'status': 'no_wallet', 'message': NO_WALLET_MESSAGE}
        if len(wallets) == 1:
            return {'status': 'connected', 'session': self.connect(wallets[0])}
        return {'status': 'select', 'choices': [w.name for w in wallets]}

    def connect_by_name(self, name):
        for wallet in self.discover():
            if wallet.name == name:
                return self.connect(wallet)
        raise WalletError(f'Failed to connect wallet: {name} is not available')

    def connect(self, provider):
        w3 = self.web3_factory(provider.handle)
        try:
            response = w3.provider.make_request('eth_requestAccounts', [])
        except Exception as e:
            logger.error(f'{provider.name} connection failed: {e}')
            raise WalletError(f'Failed to connect wallet: {e}') from e

        error = response.get('error')
        if error:
            message = error.get('message') if isinstance(error, Mapping) else error
            logger.warning(f'{provider.name} rejected the connection: {message}')
            raise WalletError(f'Failed to connect wallet: {message}')

        accounts = response.get('result') or []
        if not accounts:
            raise WalletError('Failed to connect wallet: no accounts available')

        try:
            address = Web3.to_checksum_address(accounts[0])
            balance = w3.eth.get_balance(address)
            chain_id = w3.eth.chain_id
        except Exception as e:
            logger.error(f'Failed to read account state from {provider.name}: {e}')
            raise WalletError(f'Failed to connect wallet: {e}') from e

        w3.eth.default_account = address
        session = WalletSession(
            address=address,
            balance=f"{Web3.from_wei(balance, 'ether'):.4f}",
            chain_id=chain_id,
            provider_name=provider.name,
            w3=w3,
        )
        logger.info(f'Connected {provider.name} wallet {address} on chain {chain_id}')
        return session

    def get_signer(self, session):
        if session is None:
            raise WalletError('Please connect your wallet first.')
        return session.w3
