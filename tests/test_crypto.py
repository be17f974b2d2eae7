from conftest import MNEMONIC

from testchain import crypto
from testchain.tx import Transaction
from testchain.utils import sha256
from testchain.wallet import HD_PATH, HDWallet, WORDLIST, mnemonic_from_entropy


def test_sign_verify():
    secret = crypto.generate_secret()
    msg = sha256(b"hello")
    sig = crypto.sign(msg, secret)
    pub = crypto.public_key(secret)
    assert crypto.verify(msg, sig, pub)
    assert not crypto.verify(msg, "00:00", pub)
    assert not crypto.verify(sha256(b"other"), sig, pub)
    assert not crypto.verify(msg, "garbage", pub)


def test_low_s_signatures():
    secret = crypto.generate_secret()
    for i in range(5):
        _, s_hex = crypto.sign(sha256(bytes([i])), secret).split(":")
        assert int(s_hex, 16) <= crypto.N // 2


def test_derive_secret_is_deterministic_per_path():
    seed = b"\x01" * 64
    a = crypto.derive_secret(seed, HD_PATH + "0")
    assert a == crypto.derive_secret(seed, HD_PATH + "0")
    assert a != crypto.derive_secret(seed, HD_PATH + "1")
    assert 0 < int.from_bytes(a, "big") < crypto.N


def test_address_format():
    address = crypto.address_from_secret(crypto.generate_secret())
    assert address.startswith("0x")
    assert len(address) == 42
    int(address[2:], 16)


def test_mnemonic_words():
    phrase = mnemonic_from_entropy(b"\xff" * 32)
    words = phrase.split()
    assert len(words) == 12
    assert all(w in WORDLIST for w in words)


def test_wallet_normalizes_whitespace():
    a = HDWallet.create(MNEMONIC)
    b = HDWallet.create("  " + MNEMONIC.replace(" ", "   ") + "\n")
    assert a.mnemonic == b.mnemonic == MNEMONIC
    assert a.secret_at(0) == b.secret_at(0)


def test_signed_transaction_verifies():
    wallet = HDWallet.create(MNEMONIC)
    (account,) = wallet.accounts(1, 0)
    tx = Transaction(sender=account.address, to="0x" + "ab" * 20, value=7, gas_price=1)
    tx.sign(account.secret_key)
    assert tx.verify()

    tx.value = 8
    assert not tx.verify()


def test_transaction_dict_round_trip_keeps_hash():
    tx = Transaction(sender="0x" + "11" * 20, to=None, value=3, nonce=2, timestamp=1000)
    assert Transaction.from_dict(tx.to_dict()).hash() == tx.hash()
