""" Threshold aggregation of verification keys and signature shares.

Shares are tagged with the index of the authority that produced them and
combined with the Lagrange basis evaluated at zero for exactly the supplied
set of indices. Every share is verified against its own key before being
combined and the result is verified against the aggregate key.
"""

import logging

from .errors import AggregationError, VerificationKeyTooShortError
from .keygen import VerificationKeyAuth, ttp_keygen
from .parallel import par_map
from .params import setup
from .utils import Signature, lagrange_coefficients_at_origin

import pytest

logger = logging.getLogger(__name__)


class SignatureShare(object):
    """ A partial signature together with its signer's index and key. """

    def __init__(self, index, verification_key, signature):
        self.index = index
        self.verification_key = verification_key
        self.signature = signature

    def __repr__(self):
        return "SignatureShare(index=%d)" % self.index


def _check_indices(indices):
    if not indices:
        raise AggregationError("Tried to aggregate an empty set of values")
    if len(set(indices)) != len(indices):
        raise AggregationError("Tried to aggregate shares with non-unique indices")


def aggregate_verification_keys(keys, indices):
    """ Combines the verification keys of a quorum into the aggregate key. """
    if len(keys) != len(indices):
        raise AggregationError("Got %d keys but %d indices" % (len(keys), len(indices)))
    _check_indices(indices)

    size = keys[0].size()
    if any(k.size() != size for k in keys):
        raise VerificationKeyTooShortError("Tried to aggregate keys of different sizes")

    G = keys[0].alpha.group
    coefs = lagrange_coefficients_at_origin(indices)
    alpha = G.wsum(coefs, [k.alpha for k in keys])
    beta_g1 = [G.wsum(coefs, [k.beta_g1[i] for k in keys]) for i in range(size)]
    beta_g2 = [G.wsum(coefs, [k.beta_g2[i] for k in keys]) for i in range(size)]
    return VerificationKeyAuth(alpha, beta_g1, beta_g2)


def combine_signatures(coefficients, signatures):
    """ s = sum(c_i * s_i) over signatures sharing the same h. """
    h = signatures[0].h
    if any(sig.h != h for sig in signatures[1:]):
        raise AggregationError("Signature shares are not on the same hash")
    G = h.group
    return Signature(h, G.wsum(coefficients, [sig.s for sig in signatures]))


def aggregate_signature_shares(params, vk, attributes, shares):
    """ Verifies and combines the shares of a signature on attributes. """
    indices = [share.index for share in shares]
    _check_indices(indices)
    G = params.grp.G

    def valid(share):
        return share.signature.verify(G, share.verification_key, attributes)

    for share, ok in zip(shares, par_map(valid, shares)):
        if not ok:
            logger.warning("Rejecting invalid signature share from authority %d", share.index)
            raise AggregationError("Signature share from authority %d is invalid" % share.index)

    coefs = lagrange_coefficients_at_origin(indices)
    signature = combine_signatures(coefs, [share.signature for share in shares])
    if not signature.verify(G, vk, attributes):
        raise AggregationError("Aggregated signature is invalid")

    logger.debug("Aggregated %d signature shares", len(shares))
    return signature

# ---------- TESTS -------------

def _setup_keys(t, n):
    params = setup(3, validity_period=2)
    keys = ttp_keygen(params, t, n)
    return params, keys

def _sign(params, keypair, attributes, h):
    sk = keypair.secret_key
    e = sk.x.value + sum(y.value * m for y, m in zip(sk.ys, attributes))
    return Signature(h, e * h)

def test_aggregate_keys():
    params, keys = _setup_keys(2, 3)
    vks = [k.verification_key for k in keys]
    vk12 = aggregate_verification_keys(vks[:2], [1, 2])
    vk23 = aggregate_verification_keys(vks[1:], [2, 3])
    vk13 = aggregate_verification_keys([vks[0], vks[2]], [1, 3])
    assert vk12 == vk23 == vk13

    with pytest.raises(AggregationError):
        aggregate_verification_keys([vks[0], vks[0]], [1, 1])

    with pytest.raises(AggregationError):
        aggregate_verification_keys([], [])

    with pytest.raises(AggregationError):
        aggregate_verification_keys(vks, [1, 2])

def test_aggregate_signatures():
    params, keys = _setup_keys(2, 3)
    vks = [k.verification_key for k in keys]
    vk = aggregate_verification_keys(vks, [1, 2, 3])
    attributes = [10, 20, 30]
    h = params.grp.hash_g1(b"test message")

    shares = [SignatureShare(k.index, k.verification_key, _sign(params, k, attributes, h))
              for k in keys]

    sig = aggregate_signature_shares(params, vk, attributes, shares[1:])
    assert sig.verify(params.grp.G, vk, attributes)
    assert sig == aggregate_signature_shares(params, vk, attributes, [shares[2], shares[0]])

    with pytest.raises(AggregationError):
        aggregate_signature_shares(params, vk, attributes, [shares[0], shares[0]])

    with pytest.raises(AggregationError):
        aggregate_signature_shares(params, vk, attributes, [])

    # A single share is below the threshold
    with pytest.raises(AggregationError):
        aggregate_signature_shares(params, vk, attributes, shares[:1])

    bad = SignatureShare(1, vks[0], Signature(h, shares[0].signature.s + params.grp.g1))
    with pytest.raises(AggregationError):
        aggregate_signature_shares(params, vk, attributes, [bad, shares[1]])
