"""Upload-then-mint pipeline.

Validate the form, pin the image, pin the metadata that references it, then
call ``mint(to, tokenURI)`` through the connected wallet. Steps run strictly
in order and the first failure ends the run: nothing is retried and nothing
already pinned is removed.
"""
import logging
import threading

import requests
from web3 import Web3

from contract import MINT_ABI
from pinata import PinataError, gateway_url

logger = logging.getLogger(__name__)


class PinningError(Exception):
    pass


class ProxyClient:
    """Client side of the two pinning proxy endpoints."""

    def __init__(self, base_url, http=requests):
        self.base_url = base_url.rstrip('/')
        self.http = http

    def upload_file(self, filename, data, content_type):
        response = self.http.post(
            f'{self.base_url}/api/pinata-upload',
            files={'file': (filename, data, content_type)}
        )
        return self._result(response, 'Failed to upload image to Pinata')

    def upload_metadata(self, metadata):
        response = self.http.post(
            f'{self.base_url}/api/pinata-metadata',
            json=metadata
        )
        return self._result(response, 'Failed to upload metadata to Pinata')

    def _result(self, response, default):
        try:
            data = response.json()
        except ValueError:
            data = None
        if not response.ok:
            error = data.get('error') if isinstance(data, dict) else None
            raise PinningError(error or default)
        if not isinstance(data, dict):
            raise PinningError('Pinning proxy returned an invalid response')
        return data


class MintOrchestrator:
    def __init__(self, pinning, contract_address, abi=None, tracker=None,
                 gateway='https://gateway.pinata.cloud', explorer_url='https://sepolia.etherscan.io',
                 on_event=None):
        self.pinning = pinning
        self.contract_address = contract_address
        self.abi = abi or MINT_ABI
        self.tracker = tracker
        self.gateway = gateway
        self.explorer_url = explorer_url.rstrip('/')
        self.on_event = on_event
        self.minting = False
        self._lock = threading.Lock()

    def submit(self, form, session):
        if not form.is_valid() or session is None:
            return {'success': False, 'step': 'validate', 'error': None}

        if not self._lock.acquire(blocking=False):
            logger.info('Mint already in progress, ignoring submission')
            return {'success': False, 'step': 'busy', 'error': None}

        self.minting = True
        try:
            ctx = {'form': form, 'session': session}
            for step in (self._upload_image, self._upload_metadata, self._mint):
                result = step(ctx)
                if not result['success']:
                    logger.error(f'Mint pipeline stopped at {result["step"]}: {result["error"]}')
                    self._emit('failed', step=result['step'], error=result['error'])
                    return result
                ctx.update(result)

            form.reset()
            result = {
                'success': True,
                'tx_hash': ctx['tx_hash'],
                'token_uri': ctx['token_uri'],
                'image_cid': ctx['image_cid'],
                'metadata_cid': ctx['metadata_cid'],
                'tx_url': f'{self.explorer_url}/tx/{ctx["tx_hash"]}',
                'metadata_url': gateway_url(ctx['metadata_cid'], self.gateway),
            }
            self._emit('confirmed', **result)
            return result
        finally:
            self.minting = False
            self._lock.release()

    def _upload_image(self, ctx):
        form = ctx['form']
        try:
            data = self.pinning.upload_file(form.image_filename, form.image, form.image_content_type)
        except (PinningError, PinataError, requests.exceptions.RequestException) as e:
            return _failure('upload_image', e)

        image_cid = data.get('IpfsHash') if isinstance(data, dict) else None
        if not image_cid:
            return _failure('upload_image', 'Pinata response missing IpfsHash')
        image_url = f'ipfs://{image_cid}'
        logger.info(f'Image pinned: {image_url}')
        self._emit('image_pinned', cid=image_cid, url=gateway_url(image_cid, self.gateway))
        return {'success': True, 'image_cid': image_cid, 'image_url': image_url}

    def _upload_metadata(self, ctx):
        metadata = ctx['form'].to_metadata(ctx['image_url'])
        try:
            data = self.pinning.upload_metadata(metadata)
        except (PinningError, PinataError, requests.exceptions.RequestException) as e:
            return _failure('upload_metadata', e)

        metadata_cid = data.get('IpfsHash') if isinstance(data, dict) else None
        if not metadata_cid:
            return _failure('upload_metadata', 'Pinata response missing IpfsHash')
        token_uri = f'ipfs://{metadata_cid}'
        logger.info(f'Metadata pinned: {token_uri}')
        self._emit('metadata_pinned', cid=metadata_cid, url=gateway_url(metadata_cid, self.gateway))
        return {'success': True, 'metadata_cid': metadata_cid, 'token_uri': token_uri}

    def _mint(self, ctx):
        session = ctx['session']
        token_uri = ctx['token_uri']
        if not self.contract_address:
            return _failure('mint', 'Contract address is not configured')

        w3 = session.w3
        try:
            contract = w3.eth.contract(address=Web3.to_checksum_address(self.contract_address), abi=self.abi)
            tx_hash = contract.functions.mint(session.address, token_uri).transact({'from': session.address})
        except Exception as e:
            # rejected or unfunded transactions surface here as provider errors
            return _failure('mint', e)

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f'Mint transaction sent with hash: {tx_hash_hex}')
        if self.tracker:
            self.tracker.record_submitted(tx_hash_hex, session.address, token_uri)
        self._emit('tx_submitted', tx_hash=tx_hash_hex)

        try:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            return self._tx_failed(tx_hash_hex, str(e))
        if receipt['status'] != 1:
            return self._tx_failed(tx_hash_hex, 'Transaction failed on chain')

        logger.info(f'Mint transaction confirmed in block {receipt.get("blockNumber")}')
        if self.tracker:
            self.tracker.record_confirmed(tx_hash_hex, receipt)
        return {'success': True, 'tx_hash': tx_hash_hex}

    def _tx_failed(self, tx_hash_hex, error):
        if self.tracker:
            self.tracker.record_failed(tx_hash_hex, error)
        result = _failure('mint', error)
        result['tx_hash'] = tx_hash_hex
        return result

    def _emit(self, event, **payload):
        if self.on_event:
            self.on_event(event, payload)


def _failure(step, error):
    if isinstance(error, Exception):
        # web3 contract errors carry a revert reason in args
        error = getattr(error, 'message', None) or str(error)
    return {'success': False, 'step': step, 'error': error}
