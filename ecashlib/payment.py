""" Payments and their verification.

A ``Payment`` is the transcript produced by ``Wallet.spend``. A verifier
accepts it only if all of the following hold, in this order: the serial
numbers are pairwise distinct, the randomised wallet signature verifies
against ``kappa``, the randomised expiration date signature verifies for the
day of spending, every randomised coin index signature verifies, and the
spend proof verifies for the payment context ``PayInfo``.
"""

import logging
import time
from secrets import token_bytes

import base58

from .bp import BpGroup, G1Elem, G2Elem, G1_BYTES
from .errors import (DeserializationError, DeserializationLengthMismatchError, EcashError,
                     ExpirationDateSignatureValidityError, SpendDuplicateSerialNumberError,
                     SpendSignaturesValidityError, SpendSignaturesVerificationError,
                     SpendZKProofVerificationError)
from .pack import decode, encode
from .params import TYPE_EXP, TYPE_IDX
from .proofs import SpendInstance, SpendProof
from .utils import (Signature, batch_verify_signatures, check_bilinear_pairing, day_timestamp,
                    hash_to_scalar)

import pytest

logger = logging.getLogger(__name__)

PAY_INFO_LEN = 72


def _bs58_encode(sbin):
    return base58.b58encode(sbin).decode("ascii")


def _bs58_decode(s, type_name):
    try:
        return base58.b58decode(s)
    except ValueError as e:
        raise DeserializationError("Malformed base58 %s: %s" % (type_name, e))


class PayInfo(object):
    """ The 72 byte context of a payment, binding its tickets to one provider
    and one transaction. """

    def __init__(self, payinfo):
        if len(payinfo) != PAY_INFO_LEN:
            raise DeserializationLengthMismatchError("PayInfo", PAY_INFO_LEN, len(payinfo))
        self.payinfo = bytes(payinfo)

    @staticmethod
    def generate(provider_public_key):
        """ A fresh context: random nonce (32) || unix timestamp (8, LE) ||
        provider public key (32). """
        if len(provider_public_key) != 32:
            raise ValueError("The provider public key must be 32 bytes long")
        timestamp = int(time.time()).to_bytes(8, "little")
        return PayInfo(token_bytes(32) + timestamp + bytes(provider_public_key))

    def timestamp(self):
        return int.from_bytes(self.payinfo[32:40], "little")

    def provider_public_key(self):
        return self.payinfo[40:]

    def to_bytes(self):
        return self.payinfo

    @staticmethod
    def from_bytes(sbin):
        return PayInfo(sbin)

    def to_bs58(self):
        return _bs58_encode(self.payinfo)

    @staticmethod
    def from_bs58(s):
        return PayInfo(_bs58_decode(s, "PayInfo"))

    def __eq__(self, other):
        return isinstance(other, PayInfo) and self.payinfo == other.payinfo

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.payinfo)

    def __repr__(self):
        return "PayInfo(%s)" % self.payinfo.hex()


def compute_pay_info_hash(pay_info, k):
    """ R_k, binding the k-th ticket of a payment to its context. """
    return hash_to_scalar(pay_info.payinfo + k.to_bytes(8, "little"))


class SerialNumber(object):
    """ The serial numbers disclosed by a payment, one per ticket. """

    def __init__(self, inner):
        self.inner = list(inner)

    def to_bytes(self):
        return b"".join(s.export() for s in self.inner)

    @staticmethod
    def from_bytes(sbin, G=None):
        if len(sbin) % G1_BYTES != 0:
            raise DeserializationError(
                "Serial number bytes must be a multiple of %d, got %d" % (G1_BYTES, len(sbin)))
        G = G or BpGroup()
        return SerialNumber([G1Elem.from_bytes(sbin[i:i + G1_BYTES], G)
                             for i in range(0, len(sbin), G1_BYTES)])

    def to_bs58(self):
        return _bs58_encode(self.to_bytes())

    @staticmethod
    def from_bs58(s, G=None):
        return SerialNumber.from_bytes(_bs58_decode(s, "SerialNumber"), G)

    def __len__(self):
        return len(self.inner)

    def __iter__(self):
        return iter(self.inner)

    def __contains__(self, item):
        return item in self.inner

    def __eq__(self, other):
        return isinstance(other, SerialNumber) and self.inner == other.inner

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.to_bytes())


class Payment(object):

    def __init__(self, kappa, kappa_e, sig, sig_exp, kappa_k, omega, ss, tt, aa, spend_value,
                 cc, zk_proof):
        self.kappa = kappa
        self.kappa_e = kappa_e
        self.sig = sig
        self.sig_exp = sig_exp
        self.kappa_k = kappa_k
        self.omega = omega
        self.ss = ss
        self.tt = tt
        self.aa = aa
        self.spend_value = spend_value
        self.cc = cc
        self.zk_proof = zk_proof

    def no_duplicate_serial_numbers(self):
        serials = [s.export() for s in self.ss]
        if len(set(serials)) != len(serials):
            raise SpendDuplicateSerialNumberError("Payment discloses a serial number twice")
        return True

    def check_signature_validity(self, params, vk):
        """ Checks the randomised wallet signature against kappa. """
        G = params.grp.G
        if self.sig.h.isinf() or \
                not check_bilinear_pairing(G, self.sig.h, self.kappa, self.sig.s, G.gen2()):
            raise SpendSignaturesValidityError("The wallet signature of the payment is invalid")
        return True

    def check_exp_signature_validity(self, params, vk, spend_date):
        """ Checks the randomised expiration date signature for the day of
        spend_date. """
        G = params.grp.G
        vk.check_size()
        kappa_e = self.kappa_e + day_timestamp(spend_date) * vk.beta_g2[1] + \
            TYPE_EXP * vk.beta_g2[2]
        if self.sig_exp.h.isinf() or \
                not check_bilinear_pairing(G, self.sig_exp.h, kappa_e, self.sig_exp.s, G.gen2()):
            raise ExpirationDateSignatureValidityError(
                "The expiration date signature of the payment is invalid")
        return True

    def batch_check_coin_index_signatures(self, params, vk):
        """ Checks all randomised coin index signatures at once. """
        vk.check_size()
        if len(self.omega) != self.spend_value or len(self.kappa_k) != self.spend_value:
            raise SpendSignaturesVerificationError(
                "Payment of %d tickets carries %d coin index signatures"
                % (self.spend_value, len(self.omega)))

        tag = TYPE_IDX * vk.beta_g2[1] + TYPE_IDX * vk.beta_g2[2]
        items = [(w.h, w.s, kappa_k + tag) for w, kappa_k in zip(self.omega, self.kappa_k)]
        if not batch_verify_signatures(params.grp.G, items):
            raise SpendSignaturesVerificationError("The coin index signatures are invalid")
        return True

    def verify_spend_proof(self, params, vk, pay_info):
        rr = [compute_pay_info_hash(pay_info, k) for k in range(self.spend_value)]
        instance = SpendInstance(self.kappa, self.cc, self.aa, self.ss, self.tt, self.kappa_k,
                                 self.kappa_e)
        if not self.zk_proof.verify(params, instance, vk, rr, pay_info.payinfo,
                                    self.spend_value):
            raise SpendZKProofVerificationError("The spend proof is invalid")
        return True

    def spend_verify(self, params, vk, pay_info, spend_date):
        """ Verifies the payment for the context pay_info on spend_date.
        Returns True or raises the error of the first failing check. """
        vk.check_size()
        try:
            self.no_duplicate_serial_numbers()
            self.check_signature_validity(params, vk)
            self.check_exp_signature_validity(params, vk, spend_date)
            self.batch_check_coin_index_signatures(params, vk)
            self.verify_spend_proof(params, vk, pay_info)
        except (SpendDuplicateSerialNumberError, SpendSignaturesValidityError,
                ExpirationDateSignatureValidityError, SpendSignaturesVerificationError,
                SpendZKProofVerificationError) as e:
            logger.warning("Rejecting payment of %d tickets: %s", self.spend_value, e)
            raise

        logger.debug("Accepted payment of %d tickets", self.spend_value)
        return True

    def serial_number(self):
        return SerialNumber(self.ss)

    def serial_number_bs58(self):
        return self.serial_number().to_bs58()

    def has_serial_number(self, serial_number_bs58):
        """ Returns True if the payment discloses exactly the serial numbers
        encoded in serial_number_bs58, in the same order. """
        serial_number = SerialNumber.from_bs58(serial_number_bs58)
        return self.ss == serial_number.inner

    def to_bytes(self):
        return encode([self.kappa, self.kappa_e, self.sig, self.sig_exp, self.kappa_k,
                       self.omega, self.ss, self.tt, self.aa, self.spend_value, self.cc,
                       self.zk_proof.to_bytes()])

    @staticmethod
    def from_bytes(sbin):
        data = decode(sbin)
        if not isinstance(data, list) or len(data) != 12:
            raise DeserializationError("Failed to deserialize Payment")
        kappa, kappa_e, sig, sig_exp, kappa_k, omega, ss, tt, aa, spend_value, cc, proof = data

        def check(value, cls):
            if not isinstance(value, cls):
                raise DeserializationError("Failed to deserialize Payment: expected %s"
                                           % cls.__name__)

        for value, cls in [(kappa, G2Elem), (kappa_e, G2Elem), (sig, Signature),
                           (sig_exp, Signature), (cc, G1Elem), (spend_value, int),
                           (proof, bytes)]:
            check(value, cls)
        for values, cls in [(kappa_k, G2Elem), (omega, Signature), (ss, G1Elem),
                            (tt, G1Elem), (aa, G1Elem)]:
            check(values, list)
            if len(values) != spend_value:
                raise DeserializationError("Failed to deserialize Payment: expected %d "
                                           "elements per ticket" % spend_value)
            for value in values:
                check(value, cls)

        return Payment(kappa, kappa_e, sig, sig_exp, kappa_k, omega, ss, tt, aa, spend_value,
                       cc, SpendProof.from_bytes(proof))

    def __eq__(self, other):
        return isinstance(other, Payment) and self.to_bytes() == other.to_bytes()

    def __ne__(self, other):
        return not self.__eq__(other)

# ---------- TESTS -------------

def test_pay_info():
    pay_info = PayInfo.generate(b"\x07" * 32)
    assert len(pay_info.to_bytes()) == PAY_INFO_LEN
    assert pay_info.provider_public_key() == b"\x07" * 32
    assert abs(pay_info.timestamp() - int(time.time())) < 60
    assert PayInfo.from_bytes(pay_info.to_bytes()) == pay_info
    assert PayInfo.generate(b"\x07" * 32) != pay_info

    with pytest.raises(DeserializationLengthMismatchError):
        PayInfo(b"\x00" * 71)

    with pytest.raises(ValueError):
        PayInfo.generate(b"\x07" * 31)

def test_pay_info_bs58():
    pay_info = PayInfo.generate(b"\x07" * 32)
    s = pay_info.to_bs58()
    assert isinstance(s, str)
    assert PayInfo.from_bs58(s) == pay_info

    with pytest.raises(DeserializationError):
        PayInfo.from_bs58("0OIl")

    with pytest.raises(DeserializationLengthMismatchError):
        PayInfo.from_bs58(s[:-2])

def test_pay_info_hash():
    pay_info = PayInfo(b"\x01" * PAY_INFO_LEN)
    assert compute_pay_info_hash(pay_info, 0) == compute_pay_info_hash(pay_info, 0)
    assert compute_pay_info_hash(pay_info, 0) != compute_pay_info_hash(pay_info, 1)
    assert compute_pay_info_hash(pay_info, 0) != \
        compute_pay_info_hash(PayInfo(b"\x02" * PAY_INFO_LEN), 0)

def test_serial_number():
    G = BpGroup()
    serial = SerialNumber([G.hashG1(b"a"), G.hashG1(b"b")])
    buf = serial.to_bytes()
    assert len(buf) == 2 * G1_BYTES
    assert SerialNumber.from_bytes(buf, G) == serial
    assert G.hashG1(b"a") in serial
    assert len(SerialNumber.from_bytes(b"")) == 0

    with pytest.raises(DeserializationError):
        SerialNumber.from_bytes(buf[:-1], G)

    s = serial.to_bs58()
    assert SerialNumber.from_bs58(s, G) == serial

    with pytest.raises(DeserializationError):
        SerialNumber.from_bs58(s + "0", G)

def test_duplicate_serial_numbers():
    G = BpGroup()
    s = G.hashG1(b"serial")
    payment = Payment(None, None, None, None, [], [], [s, s], [], [], 2, None, None)
    with pytest.raises(SpendDuplicateSerialNumberError):
        payment.no_duplicate_serial_numbers()

    other = G.hashG1(b"other")
    payment.ss = [s, other]
    assert payment.no_duplicate_serial_numbers()
    assert payment.serial_number_bs58() == SerialNumber([s, other]).to_bs58()
    assert payment.has_serial_number(SerialNumber([s, other]).to_bs58())

    # Only the whole list of serial numbers matches
    assert not payment.has_serial_number(SerialNumber([s]).to_bs58())
    assert not payment.has_serial_number(SerialNumber([other, s]).to_bs58())
    assert not payment.has_serial_number(SerialNumber([s, other, s]).to_bs58())

def test_payment_malformed():
    with pytest.raises(DeserializationError):
        Payment.from_bytes(encode([1, 2, 3]))

    with pytest.raises(DeserializationError):
        Payment.from_bytes(b"\x93\x01")

@pytest.fixture(scope="module")
def spent():
    from .wallet import EXP, Wallet, _ticketbook
    params, vk, user, wallet_bytes, dates, indices = _ticketbook(3, 2, EXP)
    pay_info = PayInfo.generate(b"\x02" * 32)
    payment = Wallet.from_bytes(wallet_bytes).spend(params, vk, user.secret_key, pay_info, 2,
                                                    dates, indices, EXP)
    return params, vk, pay_info, payment.to_bytes(), EXP

def test_verify(spent):
    params, vk, pay_info, buf, exp = spent
    payment = Payment.from_bytes(buf)
    assert payment.spend_verify(params, vk, pay_info, exp)
    assert payment.has_serial_number(payment.serial_number_bs58())

def test_verify_context(spent):
    params, vk, pay_info, buf, exp = spent
    payment = Payment.from_bytes(buf)

    with pytest.raises(SpendZKProofVerificationError):
        payment.spend_verify(params, vk, PayInfo.generate(b"\x02" * 32), exp)

    with pytest.raises(ExpirationDateSignatureValidityError):
        payment.spend_verify(params, vk, pay_info, exp - 86400)

def test_verify_tampered(spent):
    params, vk, pay_info, buf, exp = spent
    G = params.grp.G
    g1, g2 = G.gen1(), G.gen2()

    cases = [
        ("ss", lambda ss: [ss[0], ss[0]], SpendDuplicateSerialNumberError),
        ("kappa", lambda kappa: kappa + g2, SpendSignaturesValidityError),
        ("sig", lambda sig: Signature(sig.h, sig.s + g1), SpendSignaturesValidityError),
        ("kappa_e", lambda kappa_e: kappa_e + g2, ExpirationDateSignatureValidityError),
        ("sig_exp", lambda sig: Signature(sig.h + g1, sig.s),
         ExpirationDateSignatureValidityError),
        ("omega", lambda omega: [omega[0], Signature(omega[1].h, omega[1].s + g1)],
         SpendSignaturesVerificationError),
        ("kappa_k", lambda kappa_k: kappa_k[::-1], SpendSignaturesVerificationError),
        ("spend_value", lambda value: value - 1, SpendSignaturesVerificationError),
        ("ss", lambda ss: ss[::-1], SpendZKProofVerificationError),
        ("tt", lambda tt: [tt[0] + g1, tt[1]], SpendZKProofVerificationError),
        ("aa", lambda aa: [aa[0], aa[1] + g1], SpendZKProofVerificationError),
        ("cc", lambda cc: cc + g1, SpendZKProofVerificationError),
    ]

    for field, change, error in cases:
        payment = Payment.from_bytes(buf)
        setattr(payment, field, change(getattr(payment, field)))
        with pytest.raises(error):
            payment.spend_verify(params, vk, pay_info, exp)

    payment = Payment.from_bytes(buf)
    payment.zk_proof.response_r = (payment.zk_proof.response_r + 1) % G.order()
    with pytest.raises(SpendZKProofVerificationError):
        payment.spend_verify(params, vk, pay_info, exp)

def test_verify_bit_flip(spent):
    params, vk, pay_info, buf, exp = spent
    for i in [len(buf) - 1, len(buf) // 2]:
        bad = bytearray(buf)
        bad[i] ^= 1
        with pytest.raises(EcashError):
            Payment.from_bytes(bytes(bad)).spend_verify(params, vk, pay_info, exp)
