import os
import tempfile
import threading
import time
import uuid
from collections import OrderedDict

from flask import Flask, render_template, request, jsonify, session, redirect, url_for, flash

import config
from contract import load_abi
from models import MintForm
from orchestrator import MintOrchestrator, ProxyClient
from pinata import PinataClient, PinataError, pin_file, pin_json
from transaction_tracker import TransactionTracker
from wallet import EndpointProviderSource, WalletConnector, WalletError

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
app.config['PINATA_JWT'] = config.PINATA_JWT
app.config['PINATA_API_URL'] = config.PINATA_API_URL
app.config['PINATA_TIMEOUT'] = config.PINATA_TIMEOUT
app.config['IPFS_GATEWAY'] = config.IPFS_GATEWAY
app.config['CONTRACT_ADDRESS'] = config.CONTRACT_ADDRESS
app.config['EXPLORER_URL'] = config.EXPLORER_URL
app.config['PROXY_BASE_URL'] = config.PROXY_BASE_URL
app.config['UPLOAD_DIR'] = config.UPLOAD_DIR
app.config['MAX_PAGES'] = config.MAX_PAGES
# Multipart overhead on top of the 10MB file ceiling
app.config['MAX_CONTENT_LENGTH'] = config.MAX_IMAGE_BYTES + 1024 * 1024

CONTRACT_ABI = load_abi(config.CONTRACT_ABI_PATH)

transaction_tracker = TransactionTracker()
connector = WalletConnector(EndpointProviderSource(config.parse_wallet_providers(config.WALLET_PROVIDERS)))
# Overrides the pinning client built from config
pinning_client = None

# Per-browser page state, in memory only; least recently used pages are evicted
pages = OrderedDict()
pages_lock = threading.Lock()


class PageState:
    def __init__(self):
        self.form = MintForm()
        self.wallet = None
        self.wallet_choices = []
        self.result = None
        self.events = []
        self.orchestrator = None

    def record_event(self, event, payload):
        app.logger.info(f'Mint event {event}: {payload}')
        self.events.append({'event': event, **payload})


def current_page():
    page_id = session.get('page_id')
    with pages_lock:
        page = pages.get(page_id)
        if page is not None:
            pages.move_to_end(page_id)
            return page

        page_id = uuid.uuid4().hex
        session['page_id'] = page_id
        page = pages[page_id] = PageState()
        while len(pages) > app.config['MAX_PAGES']:
            evicted_id, _ = pages.popitem(last=False)
            app.logger.info(f'Evicted idle page state {evicted_id}')
        return page


def default_pinning_client():
    # Only go over HTTP when the proxies live on a known, separate host
    if app.config['PROXY_BASE_URL']:
        return ProxyClient(app.config['PROXY_BASE_URL'])
    return PinataClient(
        app.config['PINATA_JWT'],
        app.config['UPLOAD_DIR'],
        api_url=app.config['PINATA_API_URL'],
        timeout=app.config['PINATA_TIMEOUT']
    )


def orchestrator_for(page):
    if page.orchestrator is None:
        pinning = pinning_client or default_pinning_client()
        page.orchestrator = MintOrchestrator(
            pinning,
            app.config['CONTRACT_ADDRESS'],
            abi=CONTRACT_ABI,
            tracker=transaction_tracker,
            gateway=app.config['IPFS_GATEWAY'],
            explorer_url=app.config['EXPLORER_URL'],
            on_event=page.record_event
        )
    return page.orchestrator


# ---------- errors ----------
@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({'error': 'Method not allowed'}), 405


@app.errorhandler(413)
def payload_too_large(e):
    if request.path.startswith('/api/'):
        return jsonify({'error': 'File size must be less than 10MB'}), 413
    flash('File size must be less than 10MB')
    return redirect(url_for('index'))


# ---------- pinning proxies ----------
@app.route('/api/pinata-upload', methods=['POST'])
def pinata_upload():
    jwt = app.config['PINATA_JWT']
    if not jwt:
        app.logger.error('PINATA_JWT is not set')
        return jsonify({'error': 'Server configuration error'}), 500

    file = request.files.get('file')
    if file is None or file.filename == '':
        return jsonify({'error': 'No file provided'}), 400

    upload_dir = app.config['UPLOAD_DIR']
    os.makedirs(upload_dir, exist_ok=True)
    fd, temp_file_path = tempfile.mkstemp(dir=upload_dir, prefix='pinata_')
    os.close(fd)
    try:
        file.save(temp_file_path)
        if os.path.getsize(temp_file_path) > config.MAX_IMAGE_BYTES:
            return jsonify({'error': 'File size must be less than 10MB'}), 413

        data = pin_file(
            temp_file_path,
            file.filename,
            jwt,
            api_url=app.config['PINATA_API_URL'],
            timeout=app.config['PINATA_TIMEOUT']
        )
        return jsonify(data)
    except PinataError as e:
        app.logger.error(f'Pinata upload error: {e.message}')
        return jsonify({'error': e.message}), e.status
    finally:
        # Clean up temporary file
        os.remove(temp_file_path)


@app.route('/api/pinata-metadata', methods=['POST'])
def pinata_metadata():
    jwt = app.config['PINATA_JWT']
    if not jwt:
        app.logger.error('PINATA_JWT is not set')
        return jsonify({'error': 'Server configuration error'}), 500

    metadata = request.get_json(silent=True)
    if not isinstance(metadata, dict):
        return jsonify({'error': 'Missing JSON metadata'}), 400

    try:
        data = pin_json(
            metadata,
            jwt,
            api_url=app.config['PINATA_API_URL'],
            timeout=app.config['PINATA_TIMEOUT']
        )
        return jsonify(data)
    except PinataError as e:
        app.logger.error(f'Pinata metadata upload error: {e.message}')
        return jsonify({'error': e.message}), e.status


# ---------- page ----------
@app.route('/')
def index():
    page = current_page()
    return render_template(
        'index.html',
        page=page,
        minting=bool(page.orchestrator and page.orchestrator.minting),
        explorer_url=app.config['EXPLORER_URL']
    )


@app.route('/connect', methods=['POST'])
def connect():
    page = current_page()
    try:
        outcome = connector.request_connection()
    except WalletError as e:
        flash(str(e))
        return redirect(url_for('index'))

    if outcome['status'] == 'no_wallet':
        flash(outcome['message'])
    elif outcome['status'] == 'select':
        page.wallet_choices = outcome['choices']
    else:
        page.wallet = outcome['session']
        page.wallet_choices = []
    return redirect(url_for('index'))


@app.route('/connect/cancel', methods=['POST'])
def cancel_connect():
    current_page().wallet_choices = []
    return redirect(url_for('index'))


@app.route('/connect/<name>', methods=['POST'])
def connect_wallet(name):
    page = current_page()
    try:
        page.wallet = connector.connect_by_name(name)
        page.wallet_choices = []
    except WalletError as e:
        app.logger.warning(f'Wallet connection failed: {e}')
        flash(str(e))
    return redirect(url_for('index'))


@app.route('/image', methods=['POST'])
def select_image():
    page = current_page()
    image = request.files.get('image')
    if image is None or image.filename == '':
        flash('No image selected')
        return redirect(url_for('index'))
    error = page.form.select_image(image.filename, image.read(), image.mimetype)
    if error:
        flash(error)
    return redirect(url_for('index'))


@app.route('/image/remove', methods=['POST'])
def remove_image():
    current_page().form.remove_image()
    return redirect(url_for('index'))


@app.route('/mint', methods=['POST'])
def mint():
    page = current_page()
    page.form.update(request.form)

    image = request.files.get('image')
    if image is not None and image.filename:
        error = page.form.select_image(image.filename, image.read(), image.mimetype)
        if error:
            flash(error)
            return redirect(url_for('index'))

    if page.form.is_valid() and page.wallet is None:
        flash('Please connect your wallet first.')
        return redirect(url_for('index'))

    orchestrator = orchestrator_for(page)
    if orchestrator.minting:
        return redirect(url_for('index'))

    page.result = None
    page.events = []
    result = orchestrator.submit(page.form, page.wallet)
    if result['success']:
        page.result = result
        app.logger.info(f'NFT minted: {result["tx_hash"]} -> {result["token_uri"]}')
    elif result['error']:
        flash(f'Minting failed: {result["error"]}')
    return redirect(url_for('index'))


@app.route('/transaction_status/<tx_hash>', methods=['GET'])
def transaction_status(tx_hash):
    status = transaction_tracker.get_transaction_status(tx_hash)
    if status is None:
        return jsonify({'error': 'Transaction not found'}), 404
    return jsonify(status)


@app.route('/health')
def health():
    return {'ok': True, 'ts': int(time.time())}


if __name__ == '__main__':
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=debug_mode, threaded=True)
