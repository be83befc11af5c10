""" Helpers shared by the e-cash protocols: hashing into the group and the
scalar field, scalar encodings, Lagrange interpolation, pairing checks and
the (h, s) signature pair.
"""

import logging
from binascii import hexlify
from hashlib import sha256

from py_ecc.bls.hash import expand_message_xmd, os2ip

from .bp import BpGroup, G1Elem, G1_BYTES
from .errors import (AggregationError, DeserializationError,
                     DeserializationLengthMismatchError)

import pytest

logger = logging.getLogger(__name__)

SCALAR_BYTES = 32
SECONDS_PER_DAY = 86400

DST_SCALAR = b"ECASHLIB-V01-CS02-with-expander-SHA256"
DST_CHALLENGE = b"ECASHLIB-V01-CS02-challenge-SHA256"


def hash_to_scalar(msg, dst=DST_SCALAR):
    """ Hashes bytes to a scalar, expanding to 48 bytes before reducing. """
    order = BpGroup().order()
    return os2ip(expand_message_xmd(msg, dst, 48, sha256)) % order


def scalar_to_bytes(x):
    """ The 32 byte little-endian encoding of a scalar. """
    return (x % BpGroup().order()).to_bytes(SCALAR_BYTES, "little")


def try_deserialize_scalar(sbin, type_name="Scalar"):
    if len(sbin) != SCALAR_BYTES:
        raise DeserializationLengthMismatchError(type_name, SCALAR_BYTES, len(sbin))
    x = int.from_bytes(sbin, "little")
    if x >= BpGroup().order():
        raise DeserializationError("Failed to deserialize %s: not a canonical scalar" % type_name)
    return x


def day_timestamp(timestamp):
    """ Truncates a unix timestamp to the start of its UTC day.

        Example:
            >>> day_timestamp(1700000000)
            1699920000
    """
    return timestamp - timestamp % SECONDS_PER_DAY


def lagrange_coefficients_at_origin(indices):
    """ The Lagrange basis polynomials for the given (unique, non-zero)
    indices, evaluated at zero. """
    if len(set(indices)) != len(indices):
        raise AggregationError("Indices are not unique")
    if any(i == 0 for i in indices):
        raise AggregationError("Index 0 is reserved for the secret")

    o = BpGroup().order()
    coefs = []
    for i in indices:
        numerator = 1
        denominator = 1
        for j in indices:
            if j == i:
                continue
            numerator = (numerator * j) % o
            denominator = (denominator * (j - i)) % o
        coefs.append((numerator * pow(denominator, -1, o)) % o)
    return coefs


def check_bilinear_pairing(G, p, q, r, s):
    """ Checks that e(p, q) == e(r, s). """
    return G.pair_product([(p, q), (-r, s)]).isone()


def batch_verify_signatures(G, items):
    """ Checks e(h_i, partial_i) == e(s_i, g2) for every (h_i, s_i, partial_i)
    at once, weighting each equation by a fresh random scalar so that a single
    invalid entry fails the whole batch. """
    items = list(items)
    if not items:
        return True

    pairs = []
    s_acc = None
    for (h, s, partial) in items:
        if h.isinf():
            return False
        r = G.random()
        pairs.append((r * h, partial))
        s_acc = r * s if s_acc is None else s_acc + r * s
    pairs.append((-s_acc, G.gen2()))
    return G.pair_product(pairs).isone()


def to_challenge(elements):
    """ Generates a scalar challenge by hashing a number of elements. """
    def encode(x):
        if isinstance(x, bytes):
            return x
        if isinstance(x, int):
            return scalar_to_bytes(x)
        return x.export()

    Cstring = b",".join([hexlify(encode(x)) for x in elements])
    return hash_to_scalar(Cstring, DST_CHALLENGE)


class Signature(object):
    """ A Pointcheval-Sanders signature (h, s) on a list of attributes. """

    __slots__ = ["h", "s"]

    def __init__(self, h, s):
        self.h = h
        self.s = s

    def randomise(self, G):
        """ Re-randomises the signature and blinds it with a fresh r. Returns
        the new signature and r, so that the holder can later disclose
        kappa = g2*r + alpha + sum(beta_i * m_i). """
        r = G.random()
        r_prime = G.random()
        h_prime = r_prime * self.h
        s_prime = r_prime * self.s + r * h_prime
        return Signature(h_prime, s_prime), r

    def randomise_simple(self, G):
        """ Re-randomises the signature without blinding it. """
        r = G.random()
        return Signature(r * self.h, r * self.s)

    def verify(self, G, vk, attributes):
        """ Checks the signature on attributes against a verification key. """
        if self.h.isinf():
            return False
        if len(attributes) > len(vk.beta_g2):
            return False
        kappa = vk.alpha
        for beta, m in zip(vk.beta_g2, attributes):
            kappa = kappa + m * beta
        return check_bilinear_pairing(G, self.h, kappa, self.s, G.gen2())

    def to_bytes(self):
        return self.h.export() + self.s.export()

    @staticmethod
    def from_bytes(sbin, G=None):
        if len(sbin) != 2 * G1_BYTES:
            raise DeserializationLengthMismatchError("Signature", 2 * G1_BYTES, len(sbin))
        G = G or BpGroup()
        h = G1Elem.from_bytes(sbin[:G1_BYTES], G)
        s = G1Elem.from_bytes(sbin[G1_BYTES:], G)
        return Signature(h, s)

    def __eq__(self, other):
        return isinstance(other, Signature) and self.h == other.h and self.s == other.s

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.to_bytes())

    def __repr__(self):
        return "Signature(h=%r, s=%r)" % (self.h, self.s)


PartialSignature = Signature
ExpirationDateSignature = Signature
PartialExpirationDateSignature = Signature
CoinIndexSignature = Signature
PartialCoinIndexSignature = Signature

# ---------- TESTS -------------

class _Key(object):
    def __init__(self, G, x, ys):
        self.alpha = x * G.gen2()
        self.beta_g2 = [y * G.gen2() for y in ys]

def test_hash_to_scalar():
    a = hash_to_scalar(b"hello")
    assert a == hash_to_scalar(b"hello")
    assert a != hash_to_scalar(b"hello", b"OTHER-DST")
    assert 0 <= a < BpGroup().order()

def test_scalar_io():
    o = BpGroup().order()
    assert try_deserialize_scalar(scalar_to_bytes(o - 1)) == o - 1
    assert scalar_to_bytes(o + 2) == scalar_to_bytes(2)

    with pytest.raises(DeserializationLengthMismatchError):
        try_deserialize_scalar(b"\x00" * 33)

    with pytest.raises(DeserializationError):
        try_deserialize_scalar(o.to_bytes(SCALAR_BYTES, "little"))

def test_lagrange():
    o = BpGroup().order()
    # Shares of the polynomial 5 + 3x
    shares = {i: (5 + 3 * i) % o for i in [1, 2, 3]}
    for subset in [[1, 2], [2, 3], [3, 1], [1, 2, 3]]:
        coefs = lagrange_coefficients_at_origin(subset)
        assert sum(c * shares[i] for c, i in zip(coefs, subset)) % o == 5

    with pytest.raises(AggregationError):
        lagrange_coefficients_at_origin([1, 1, 2])

    assert lagrange_coefficients_at_origin([4]) == [1]

def test_day_timestamp():
    assert day_timestamp(SECONDS_PER_DAY * 5 + 17) == SECONDS_PER_DAY * 5
    assert day_timestamp(SECONDS_PER_DAY * 5) == SECONDS_PER_DAY * 5

def test_challenge():
    G = BpGroup()
    c1 = to_challenge([G.gen1(), G.gen2(), 5, b"info"])
    c2 = to_challenge([G.gen1(), G.gen2(), 6, b"info"])
    assert c1 != c2

def test_signature():
    G = BpGroup()
    x, y0, y1 = 11, 13, 17
    vk = _Key(G, x, [y0, y1])
    h = G.hashG1(b"attributes")
    sig = Signature(h, (x + y0 * 3 + y1 * 4) * h)

    assert sig.verify(G, vk, [3, 4])
    assert not sig.verify(G, vk, [3, 5])
    assert sig.randomise_simple(G).verify(G, vk, [3, 4])

    rsig, r = sig.randomise(G)
    kappa = r * G.gen2() + vk.alpha + 3 * vk.beta_g2[0] + 4 * vk.beta_g2[1]
    assert check_bilinear_pairing(G, rsig.h, kappa, rsig.s, G.gen2())

    assert Signature.from_bytes(sig.to_bytes(), G) == sig
    with pytest.raises(DeserializationLengthMismatchError):
        Signature.from_bytes(sig.to_bytes()[:95], G)

def test_batch_verify():
    G = BpGroup()
    x, y = 7, 9
    alpha, beta = x * G.gen2(), y * G.gen2()
    items = []
    for m in [1, 2]:
        h = G.hashG1(b"m%d" % m)
        items.append((h, (x + y * m) * h, alpha + m * beta))
    assert batch_verify_signatures(G, items)

    h, s, partial = items[1]
    items[1] = (h, s + G.gen1(), partial)
    assert not batch_verify_signatures(G, items)
