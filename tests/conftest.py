"""
Shared fixtures for the minter tests.
"""

import io
import os
from collections import OrderedDict
from unittest.mock import MagicMock, Mock

import pytest
from PIL import Image

import app as app_module
from config import MAX_IMAGE_BYTES
from models import MintForm, WalletSession
from transaction_tracker import TransactionTracker

ADDRESS = '0x' + 'ab' * 20
CONTRACT_ADDRESS = '0x' + '12' * 20
TX_HASH = bytes.fromhex('cd' * 32)
TX_HASH_HEX = '0x' + 'cd' * 32


def make_png(size=(32, 32), noise=False):
    if noise:
        image = Image.frombytes('RGB', size, os.urandom(size[0] * size[1] * 3))
    else:
        image = Image.new('RGB', size, (120, 40, 200))
    buf = io.BytesIO()
    image.save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def filled_form(png_bytes):
    form = MintForm()
    form.update({'name': 'Art1', 'description': 'desc'})
    assert form.select_image('art.png', png_bytes, 'image/png') is None
    return form


@pytest.fixture
def w3():
    """A Web3 stand-in whose mint call confirms in block 42."""
    w3 = MagicMock()
    contract = w3.eth.contract.return_value
    contract.functions.mint.return_value.transact.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {'status': 1, 'blockNumber': 42}
    return w3


@pytest.fixture
def wallet_session(w3):
    return WalletSession(ADDRESS, '1.0000', 11155111, 'MetaMask', w3)


@pytest.fixture
def pinning():
    pinning = Mock()
    pinning.upload_file.return_value = {'IpfsHash': 'CID_IMG', 'PinSize': 123}
    pinning.upload_metadata.return_value = {'IpfsHash': 'CID_META', 'PinSize': 45}
    return pinning


@pytest.fixture
def tracker():
    return TransactionTracker()


@pytest.fixture
def client(tmp_path, monkeypatch):
    flask_app = app_module.app
    flask_app.config.update(
        TESTING=True,
        PINATA_JWT='test-jwt',
        PINATA_API_URL='https://pinata.test',
        UPLOAD_DIR=str(tmp_path / 'uploads'),
        CONTRACT_ADDRESS=CONTRACT_ADDRESS,
        EXPLORER_URL='https://sepolia.etherscan.io',
        IPFS_GATEWAY='https://gateway.pinata.cloud',
        PROXY_BASE_URL=None,
        MAX_PAGES=256,
        MAX_CONTENT_LENGTH=MAX_IMAGE_BYTES + 1024 * 1024,
    )
    monkeypatch.setattr(app_module, 'pages', OrderedDict())
    monkeypatch.setattr(app_module, 'transaction_tracker', TransactionTracker())
    monkeypatch.setattr(app_module, 'pinning_client', None)
    with flask_app.test_client() as client:
        yield client
