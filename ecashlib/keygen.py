""" Authority and user keys.

Authorities hold one secret ``x`` and one ``y_i`` per attribute slot, and
publish ``alpha = g2*x``, ``beta_g1[i] = g1*y_i`` and ``beta_g2[i] = g2*y_i``.
``ttp_keygen`` deals Shamir shares of such a key to ``n`` authorities so that
any ``t`` of them can issue. Users hold a single scalar ``sk`` with public
image ``g1*sk``.
"""

import logging

from .bp import G1Elem, G2Elem, G1_BYTES, G2_BYTES
from .errors import (DeserializationLengthMismatchError, KeygenError,
                     VerificationKeyTooShortError)
from .params import ATTRIBUTES_LEN, setup
from .parallel import par_map
from .secret import SecretScalar
from .utils import hash_to_scalar

import pytest

logger = logging.getLogger(__name__)

DST_USER_KEY = b"ECASHLIB-V01-CS02-user-key-derivation"


class SecretKeyAuth(object):

    def __init__(self, x, ys):
        self.x = SecretScalar(x)
        self.ys = [SecretScalar(y) for y in ys]

    def size(self):
        return len(self.ys)

    def verification_key(self, params):
        """ Derives the verification key matching this secret key. """
        grp = params.grp
        x = self.x.value
        ys = [y.value for y in self.ys]
        return VerificationKeyAuth(
            x * grp.g2,
            [y * grp.g1 for y in ys],
            [y * grp.g2 for y in ys])

    def wipe(self):
        self.x.wipe()
        for y in self.ys:
            y.wipe()

    def __repr__(self):
        return "SecretKeyAuth(<redacted>)"


class VerificationKeyAuth(object):

    def __init__(self, alpha, beta_g1, beta_g2):
        if len(beta_g1) != len(beta_g2):
            raise ValueError("Got %d beta_g1 elements but %d beta_g2 elements"
                             % (len(beta_g1), len(beta_g2)))
        self.alpha = alpha
        self.beta_g1 = list(beta_g1)
        self.beta_g2 = list(beta_g2)

    def size(self):
        return len(self.beta_g1)

    def check_size(self, n=ATTRIBUTES_LEN):
        """ Raises unless the key covers at least n attributes. """
        if self.size() < n:
            raise VerificationKeyTooShortError(
                "Verification key has %d attribute slots, %d are needed" % (self.size(), n))

    def to_bytes(self):
        """ alpha || number of attributes (8 bytes LE) || beta_g1 || beta_g2 """
        return b"".join([self.alpha.export(), self.size().to_bytes(8, "little")]
                        + [b.export() for b in self.beta_g1]
                        + [b.export() for b in self.beta_g2])

    @staticmethod
    def from_bytes(sbin, G):
        header = G2_BYTES + 8
        if len(sbin) < header:
            raise DeserializationLengthMismatchError("VerificationKeyAuth", header, len(sbin))
        n = int.from_bytes(sbin[G2_BYTES:header], "little")
        expected = header + n * (G1_BYTES + G2_BYTES)
        if len(sbin) != expected:
            raise DeserializationLengthMismatchError("VerificationKeyAuth", expected, len(sbin))

        alpha = G2Elem.from_bytes(sbin[:G2_BYTES], G)
        g1_end = header + n * G1_BYTES
        beta_g1 = [G1Elem.from_bytes(sbin[i:i + G1_BYTES], G)
                   for i in range(header, g1_end, G1_BYTES)]
        beta_g2 = [G2Elem.from_bytes(sbin[i:i + G2_BYTES], G)
                   for i in range(g1_end, expected, G2_BYTES)]
        return VerificationKeyAuth(alpha, beta_g1, beta_g2)

    def __eq__(self, other):
        return (isinstance(other, VerificationKeyAuth) and self.alpha == other.alpha
                and self.beta_g1 == other.beta_g1 and self.beta_g2 == other.beta_g2)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.to_bytes())

    def __repr__(self):
        return "VerificationKeyAuth(alpha=%r, size=%d)" % (self.alpha, self.size())


class KeyPairAuth(object):
    """ An authority key pair together with the authority's share index. """

    def __init__(self, secret_key, verification_key, index=None):
        self.secret_key = secret_key
        self.verification_key = verification_key
        self.index = index


class SecretKeyUser(object):

    def __init__(self, sk):
        self.sk = SecretScalar(sk)

    def public_key(self, params):
        return PublicKeyUser(self.sk.value * params.grp.g1)

    def to_bytes(self):
        return self.sk.to_bytes()

    @staticmethod
    def from_bytes(sbin):
        key = SecretKeyUser(0)
        key.sk = SecretScalar.from_bytes(sbin)
        return key

    def wipe(self):
        self.sk.wipe()

    def __repr__(self):
        return "SecretKeyUser(<redacted>)"


class PublicKeyUser(object):

    def __init__(self, pk):
        self.pk = pk

    def to_bytes(self):
        return self.pk.export()

    @staticmethod
    def from_bytes(sbin, G):
        return PublicKeyUser(G1Elem.from_bytes(sbin, G))

    def __eq__(self, other):
        return isinstance(other, PublicKeyUser) and self.pk == other.pk

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.pk)

    def __repr__(self):
        return "PublicKeyUser(%s)" % self.pk


class KeyPairUser(object):

    def __init__(self, secret_key, public_key):
        self.secret_key = secret_key
        self.public_key = public_key


def _poly_eval(coeffs, x, o):
    """ Evaluates the polynomial with the given coefficients at x. """
    return sum(c * pow(x, i, o) for i, c in enumerate(coeffs)) % o


def ttp_keygen(params, threshold, num_authorities):
    """ Generates keys for num_authorities authorities, any threshold of which
    can issue, through a trusted dealer. The returned key pairs carry the
    indices 1..num_authorities. """
    if threshold < 1:
        raise KeygenError("Tried to generate threshold keys with a threshold value of %d"
                          % threshold)
    if threshold > num_authorities:
        raise KeygenError("Tried to generate threshold keys for threshold value being "
                          "higher than number of the signing authorities")

    grp = params.grp
    o = grp.order()
    v = grp.n_random_scalars(threshold)
    ws = [grp.n_random_scalars(threshold) for _ in range(ATTRIBUTES_LEN)]

    indices = list(range(1, num_authorities + 1))

    def share(i):
        sk = SecretKeyAuth(_poly_eval(v, i, o), [_poly_eval(w, i, o) for w in ws])
        return KeyPairAuth(sk, sk.verification_key(params), i)

    keypairs = par_map(share, indices)
    logger.debug("Dealt %d of %d authority keys", threshold, num_authorities)
    return keypairs


def generate_keypair_user(params, seed=None):
    """ Generates a user key pair, deterministically when a seed is given. """
    if seed is None:
        sk = params.grp.random_scalar()
    else:
        sk = hash_to_scalar(seed, DST_USER_KEY)
    secret_key = SecretKeyUser(sk)
    return KeyPairUser(secret_key, secret_key.public_key(params))

# ---------- TESTS -------------

def test_ttp_keygen():
    params = setup(3, validity_period=2)
    keys = ttp_keygen(params, 2, 3)
    assert [k.index for k in keys] == [1, 2, 3]
    for kp in keys:
        assert kp.secret_key.size() == ATTRIBUTES_LEN
        assert kp.verification_key.size() == ATTRIBUTES_LEN
        assert kp.verification_key.alpha == kp.secret_key.x.value * params.grp.g2

    with pytest.raises(KeygenError):
        ttp_keygen(params, 0, 3)

    with pytest.raises(KeygenError):
        ttp_keygen(params, -1, 3)

    with pytest.raises(KeygenError):
        ttp_keygen(params, 4, 3)

def test_verification_key_io():
    params = setup(3)
    G = params.grp.G
    sk = SecretKeyAuth(5, [6, 7, 8])
    vk = sk.verification_key(params)
    buf = vk.to_bytes()
    assert len(buf) == 96 + 8 + 3 * (48 + 96)
    assert VerificationKeyAuth.from_bytes(buf, G) == vk

    with pytest.raises(DeserializationLengthMismatchError):
        VerificationKeyAuth.from_bytes(buf[:-1], G)

    with pytest.raises(DeserializationLengthMismatchError):
        VerificationKeyAuth.from_bytes(buf[:50], G)

def test_key_size():
    params = setup(3)
    vk = SecretKeyAuth(5, [6, 7]).verification_key(params)
    with pytest.raises(VerificationKeyTooShortError):
        vk.check_size()

    with pytest.raises(ValueError):
        VerificationKeyAuth(vk.alpha, vk.beta_g1, vk.beta_g2[:1])

def test_user_keys():
    params = setup(3)
    kp1 = generate_keypair_user(params, seed=b"alice")
    kp2 = generate_keypair_user(params, seed=b"alice")
    kp3 = generate_keypair_user(params)
    assert kp1.public_key == kp2.public_key
    assert kp1.public_key != kp3.public_key

    sk = SecretKeyUser.from_bytes(kp1.secret_key.to_bytes())
    assert sk.public_key(params) == kp1.public_key
    assert PublicKeyUser.from_bytes(kp1.public_key.to_bytes(), params.grp.G) == kp1.public_key

def test_wipe():
    sk = SecretKeyAuth(5, [6, 7, 8])
    sk.wipe()
    assert sk.x.is_wiped()
    assert all(y.is_wiped() for y in sk.ys)
