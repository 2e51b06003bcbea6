import os
import json
import base64
import threading
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from crvote.audit.audit_logger import AuditLogger, KEY_FILE_NAME


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create a temporary directory for test logs."""
    log_dir = tmp_path / "test_logs"
    log_dir.mkdir()
    return str(log_dir)


@pytest.fixture
def audit_logger(temp_log_dir):
    return AuditLogger(log_dir=temp_log_dir)


def test_init_creates_log_directory(temp_log_dir):
    os.rmdir(temp_log_dir)
    AuditLogger(log_dir=temp_log_dir)
    assert os.path.exists(temp_log_dir)


def test_log_security_event_basic(audit_logger, temp_log_dir):
    data = {"election_id": 3, "gender": "Male"}
    audit_logger.log_security_event("vote_cast", data, user_id=7)

    with open(os.path.join(temp_log_dir, 'audit.log'), 'r') as f:
        entry = json.loads(f.readline())

    assert entry['event_type'] == "vote_cast"
    assert entry['data'] == data
    assert entry['user_id'] == 7
    assert entry['previous_hash'] is None  # first entry
    assert 'timestamp' in entry
    assert 'hash' in entry
    assert 'signature' in entry


def test_hash_chaining(audit_logger):
    audit_logger.log_security_event("election_created", {"election_id": 1})
    first_hash = audit_logger.previous_hash
    audit_logger.log_security_event("election_ended", {"election_id": 1})

    entries = audit_logger.read_entries()
    assert entries[0]['hash'] == first_hash
    assert entries[1]['previous_hash'] == first_hash


def test_signature_covers_entry_body(audit_logger):
    audit_logger.log_security_event("candidate_added", {"name": "Asha"})
    entry = audit_logger.read_entries()[0]

    signature = base64.b64decode(entry.pop('signature'))
    entry.pop('hash')
    payload = json.dumps(entry, sort_keys=True).encode()
    # raises InvalidSignature if the body was not what got signed
    audit_logger.signing_key.public_key().verify(signature, payload)


def test_access_denied_entry(audit_logger):
    audit_logger.log_access_denied('create_election', 'asha@vvce.ac.in', 'requires role admin')
    entry = audit_logger.read_entries()[0]
    assert entry['event_type'] == 'access_denied'
    assert entry['data'] == {
        'operation': 'create_election', 'email': 'asha@vvce.ac.in', 'reason': 'requires role admin',
    }


def test_verify_log_integrity_valid(audit_logger):
    audit_logger.log_security_event("successful_login", {"email": "a@gmail.com"})
    audit_logger.log_security_event("vote_cast", {"vote_id": 1})
    assert audit_logger.verify_log_integrity() is True


def test_verify_log_integrity_detects_edits(audit_logger):
    audit_logger.log_security_event("vote_cast", {"vote_id": 1})
    entry = audit_logger.read_entries()[0]
    entry['data']['vote_id'] = 2
    with open(audit_logger.log_file, 'w') as f:
        f.write(json.dumps(entry) + "\n")
    assert audit_logger.verify_log_integrity() is False


def test_verify_log_integrity_detects_appended_junk(audit_logger):
    audit_logger.log_security_event("vote_cast", {"vote_id": 1})
    with open(audit_logger.log_file, 'a') as f:
        f.write('{"tampered": true}\n')
    assert audit_logger.verify_log_integrity() is False


def test_load_previous_hash(temp_log_dir):
    logger1 = AuditLogger(log_dir=temp_log_dir)
    logger1.log_security_event("election_created", {"election_id": 1})

    logger2 = AuditLogger(log_dir=temp_log_dir)
    assert logger2.previous_hash == logger1.previous_hash


def test_write_failure_does_not_raise(audit_logger, monkeypatch):
    def mock_open(*args, **kwargs):
        raise PermissionError("Access denied")

    monkeypatch.setattr("builtins.open", mock_open)
    assert audit_logger.log_security_event("vote_cast", {"vote_id": 1}) is None
    assert audit_logger.previous_hash is None


def test_verify_log_integrity_after_restart(temp_log_dir):
    first = AuditLogger(log_dir=temp_log_dir)
    first.log_security_event("election_created", {"election_id": 1})

    restarted = AuditLogger(log_dir=temp_log_dir)
    restarted.log_security_event("vote_cast", {"vote_id": 1})

    assert len(restarted.read_entries()) == 2
    assert restarted.verify_log_integrity() is True
    assert first.verify_log_integrity() is True


def test_signing_key_is_kept_beside_the_log(temp_log_dir):
    first = AuditLogger(log_dir=temp_log_dir)
    key_file = os.path.join(temp_log_dir, KEY_FILE_NAME)
    assert os.path.exists(key_file)
    assert oct(os.stat(key_file).st_mode & 0o777) == oct(0o600)

    second = AuditLogger(log_dir=temp_log_dir)
    raw = serialization.Encoding.Raw
    assert (second.signing_key.public_key().public_bytes(raw, serialization.PublicFormat.Raw)
            == first.signing_key.public_key().public_bytes(raw, serialization.PublicFormat.Raw))


def test_signing_key_from_configured_pem(temp_log_dir):
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()).decode()

    logger = AuditLogger(log_dir=temp_log_dir, signing_key_pem=pem)
    logger.log_security_event("vote_cast", {"vote_id": 1})
    entry = logger.read_entries()[0]
    signature = base64.b64decode(entry.pop('signature'))
    entry.pop('hash')
    key.public_key().verify(signature, json.dumps(entry, sort_keys=True).encode())
    # a configured key is not written to disk
    assert not os.path.exists(os.path.join(temp_log_dir, KEY_FILE_NAME))


def test_concurrent_writes_keep_a_single_chain(audit_logger):
    def write(n):
        for i in range(10):
            audit_logger.log_security_event("vote_cast", {"thread": n, "vote_id": i})

    threads = [threading.Thread(target=write, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    entries = audit_logger.read_entries()
    assert len(entries) == 80
    assert len({e['previous_hash'] for e in entries}) == 80
    assert audit_logger.verify_log_integrity() is True
