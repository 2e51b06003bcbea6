# crvote/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from datetime import datetime, timezone
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.exceptions import InvalidSignature

# Append-only security trail for the election: sign-ins, refused access,
# election/candidate changes and ballots. Each JSON line carries the hash of
# the previous line and an Ed25519 signature so later edits are detectable.

logger = logging.getLogger(__name__)

KEY_FILE_NAME = 'audit_signing_key.pem'


class AuditLogger:
    def __init__(self, log_dir='logs', file_name='audit.log', signing_key_pem=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, file_name)
        self.key_file = os.path.join(log_dir, KEY_FILE_NAME)
        self.previous_hash = None
        # hash, sign, append and chain update happen as one step
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        self.signing_key = self._load_signing_key(signing_key_pem)
        self._load_previous_hash()

    def _load_signing_key(self, pem_str=None):
        """Use the configured PEM key, else the one kept beside the log, else create it."""
        if pem_str:
            key = serialization.load_pem_private_key(pem_str.encode(), password=None)
        elif os.path.exists(self.key_file):
            with open(self.key_file, 'rb') as f:
                key = serialization.load_pem_private_key(f.read(), password=None)
        else:
            key = Ed25519PrivateKey.generate()
            pem = key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption())
            fd = os.open(self.key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(pem)
            logger.info("Created audit signing key %s", self.key_file)

        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError("Audit signing key must be an Ed25519 private key")
        return key

    def _load_previous_hash(self):
        if not os.path.exists(self.log_file):
            return
        last_line = None
        with open(self.log_file, 'r') as f:
            for line in f:
                if line.strip():
                    last_line = line
        if last_line is None:
            return
        try:
            self.previous_hash = json.loads(last_line).get('hash')
        except ValueError:
            logger.warning("Audit log %s ends with an unreadable entry", self.log_file)
            self.previous_hash = None

    @staticmethod
    def _canonical(entry):
        return json.dumps(entry, sort_keys=True).encode()

    def log_security_event(self, event_type, data, user_id=None):
        """Append one event. Failures are reported but never break the request."""
        with self._lock:
            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "event_type": event_type,
                "data": data,
                "user_id": user_id,
                "previous_hash": self.previous_hash,
            }
            try:
                payload = self._canonical(entry)
                entry['hash'] = hashlib.sha256(payload).hexdigest()
                entry['signature'] = base64.b64encode(self.signing_key.sign(payload)).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(entry) + "\n")

                self.previous_hash = entry['hash']
            except (OSError, TypeError, ValueError) as e:
                logger.error("Audit log write failed for %s: %s", event_type, e)
                return None
        logger.info("audit %s user=%s %s", event_type, user_id, data)
        return entry

    def log_access_denied(self, operation, identity, reason):
        return self.log_security_event(
            'access_denied', {'operation': operation, 'email': identity, 'reason': reason}
        )

    def read_entries(self):
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r') as f:
            return [json.loads(line) for line in f if line.strip()]

    def verify_log_integrity(self):
        """Check the hash chain of the whole file and every line's signature against the signing key."""
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            for entry in self.read_entries():
                if entry.get('previous_hash') != previous_hash:
                    return False
                signature = base64.b64decode(entry['signature'])
                body = {k: v for k, v in entry.items() if k not in ('hash', 'signature')}
                payload = self._canonical(body)
                if hashlib.sha256(payload).hexdigest() != entry['hash']:
                    return False
                public_key.verify(signature, payload)
                previous_hash = entry['hash']
        except (KeyError, ValueError, InvalidSignature):
            return False
        return True
