import threading
from datetime import datetime, timezone


class TransactionTracker:
    """In-memory record of mint transactions submitted from this process."""

    def __init__(self):
        self.transactions = {}
        self._lock = threading.Lock()

    def record_submitted(self, tx_hash, recipient, token_uri):
        with self._lock:
            self.transactions[tx_hash] = {
                'tx_hash': tx_hash,
                'type': 'mint',
                'status': 'submitted',
                'recipient': recipient,
                'token_uri': token_uri,
                'created_at': datetime.now(timezone.utc),
                'error': None
            }

    def record_confirmed(self, tx_hash, receipt):
        with self._lock:
            tx = self.transactions.get(tx_hash)
            if tx is None:
                return
            tx['status'] = 'confirmed'
            tx['block_number'] = receipt.get('blockNumber')
            tx['confirmed_at'] = datetime.now(timezone.utc)

    def record_failed(self, tx_hash, error):
        with self._lock:
            tx = self.transactions.get(tx_hash)
            if tx is None:
                return
            tx['status'] = 'failed'
            tx['error'] = error

    def get_transaction_status(self, tx_hash):
        """
        Get status of a mint transaction by its hash, or None if unknown
        """
        with self._lock:
            if tx_hash not in self.transactions:
                return None
            tx_data = self.transactions[tx_hash].copy()

        # Convert datetime to string for JSON
        if 'created_at' in tx_data:
            tx_data['created_at'] = tx_data['created_at'].isoformat()
        if 'confirmed_at' in tx_data:
            tx_data['confirmed_at'] = tx_data['confirmed_at'].isoformat()

        return tx_data
