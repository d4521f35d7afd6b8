# Runtime configuration, read from the environment.
# Keep secrets (PINATA_JWT, SECRET_KEY) out of source control.
import os

# Pinata IPFS (JWT auth)
PINATA_JWT = os.getenv('PINATA_JWT')
PINATA_API_URL = os.getenv('PINATA_API_URL', 'https://api.pinata.cloud')
PINATA_TIMEOUT = int(os.getenv('PINATA_TIMEOUT', 30))
IPFS_GATEWAY = os.getenv('IPFS_GATEWAY', 'https://gateway.pinata.cloud')

# Contract / network
CONTRACT_ADDRESS = os.getenv('CONTRACT_ADDRESS')
CONTRACT_ABI_PATH = os.getenv('CONTRACT_ABI_PATH')
CHAIN_ID = int(os.getenv('CHAIN_ID', 11155111))  # Sepolia
EXPLORER_URL = os.getenv('EXPLORER_URL', 'https://sepolia.etherscan.io')

# Wallet providers, e.g. "MetaMask=http://127.0.0.1:8545,Phantom=http://127.0.0.1:8546"
WALLET_PROVIDERS = os.getenv('WALLET_PROVIDERS', '')

# Base URL of separately deployed pinning proxies; unset pins in-process
PROXY_BASE_URL = os.getenv('PROXY_BASE_URL')

SECRET_KEY = os.getenv('SECRET_KEY', 'nft-minter-dev-key')
UPLOAD_DIR = os.getenv('UPLOAD_DIR', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'tmp_uploads'))

MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB

# In-memory page states kept before the least recently used is dropped
MAX_PAGES = int(os.getenv('MAX_PAGES', 256))


def parse_wallet_providers(value):
    """Parse "Name=uri,Name2=uri2" into a list of (name, uri) pairs."""
    endpoints = []
    for item in (value or '').split(','):
        item = item.strip()
        if not item or '=' not in item:
            continue
        name, uri = item.split('=', 1)
        if name.strip() and uri.strip():
            endpoints.append((name.strip(), uri.strip()))
    return endpoints
