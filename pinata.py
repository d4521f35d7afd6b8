import logging
import os
import tempfile

import requests

logger = logging.getLogger(__name__)


class PinataError(Exception):
    """Pinata rejected a pin or could not be reached."""

    def __init__(self, message, status=500):
        super().__init__(message)
        self.message = message
        self.status = status


def _error_text(response, default):
    try:
        data = response.json()
    except ValueError:
        return response.text or default
    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict):
        # Pinata sometimes nests {"reason": ..., "details": ...}
        return error.get('details') or error.get('reason') or default
    return error or default


def _json_body(response):
    try:
        data = response.json()
    except ValueError:
        logger.error(f'Pinata returned a non-JSON body: {response.text[:200]}')
        raise PinataError('Pinata returned an invalid response')
    if not isinstance(data, dict):
        raise PinataError('Pinata returned an invalid response')
    return data


def pin_file(file_path, filename, jwt, api_url='https://api.pinata.cloud', timeout=30):
    """Forward a file on disk to pinFileToIPFS and return Pinata's JSON."""
    headers = {
        'Authorization': f'Bearer {jwt}'
    }
    size = os.path.getsize(file_path)
    logger.info(f'Uploading {size} bytes ({filename}) to Pinata...')
    try:
        with open(file_path, 'rb') as f:
            files = {
                'file': (filename, f)
            }
            response = requests.post(
                f'{api_url}/pinning/pinFileToIPFS',
                files=files,
                headers=headers,
                timeout=timeout
            )
    except requests.exceptions.RequestException as e:
        logger.error(f'Pinata file upload failed: {e}')
        raise PinataError(str(e))

    if not response.ok:
        logger.error(f'Pinata upload failed ({response.status_code}): {response.text}')
        raise PinataError(_error_text(response, 'Failed to upload to Pinata'))

    data = _json_body(response)
    logger.info(f'File pinned: {data.get("IpfsHash")}')
    return data


def pin_json(metadata, jwt, api_url='https://api.pinata.cloud', timeout=30):
    """Forward a metadata document to pinJSONToIPFS and return Pinata's JSON."""
    headers = {
        'Authorization': f'Bearer {jwt}',
        'Content-Type': 'application/json'
    }
    body = {
        'pinataContent': metadata,
        'pinataMetadata': {
            'name': f'{metadata.get("name")}-metadata.json'
        }
    }
    try:
        response = requests.post(
            f'{api_url}/pinning/pinJSONToIPFS',
            json=body,
            headers=headers,
            timeout=timeout
        )
    except requests.exceptions.RequestException as e:
        logger.error(f'Pinata metadata upload failed: {e}')
        raise PinataError(str(e))

    if not response.ok:
        logger.error(f'Metadata upload failed ({response.status_code}): {response.text}')
        raise PinataError(_error_text(response, 'Failed to upload metadata to Pinata'))

    data = _json_body(response)
    logger.info(f'Metadata pinned: {data.get("IpfsHash")}')
    return data


def gateway_url(cid, gateway='https://gateway.pinata.cloud'):
    return f'{gateway.rstrip("/")}/ipfs/{cid}'


class PinataClient:
    """Pins straight to Pinata from this process.

    Same interface as the proxy client, so the mint pipeline can use either.
    """

    def __init__(self, jwt, upload_dir, api_url='https://api.pinata.cloud', timeout=30):
        self.jwt = jwt
        self.upload_dir = upload_dir
        self.api_url = api_url
        self.timeout = timeout

    def upload_file(self, filename, data, content_type=None):
        if not self.jwt:
            raise PinataError('Server configuration error')
        os.makedirs(self.upload_dir, exist_ok=True)
        fd, temp_file_path = tempfile.mkstemp(dir=self.upload_dir, prefix='pinata_')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            return pin_file(temp_file_path, filename, self.jwt, api_url=self.api_url, timeout=self.timeout)
        finally:
            os.remove(temp_file_path)

    def upload_metadata(self, metadata):
        if not self.jwt:
            raise PinataError('Server configuration error')
        return pin_json(metadata, self.jwt, api_url=self.api_url, timeout=self.timeout)
