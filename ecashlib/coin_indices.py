""" Coin index signatures.

Every authority signs each ticket index ``0..total_coins-1`` on the attributes
``(index, TYPE_IDX, TYPE_IDX)``, hashed together with the aggregate
verification key they are issued under. A spender shows a randomised
signature on each index it uses, which proves the index is within the wallet
budget.
"""

import logging

from .aggregation import aggregate_verification_keys, combine_signatures
from .errors import AggregationError, CoinIndexSignatureError
from .keygen import ttp_keygen
from .parallel import par_map
from .params import TYPE_IDX, setup
from .utils import (Signature, batch_verify_signatures, lagrange_coefficients_at_origin,
                    scalar_to_bytes)

import pytest

logger = logging.getLogger(__name__)


def coin_index_hash(grp, vk_bytes, index):
    msg = vk_bytes + scalar_to_bytes(index) + scalar_to_bytes(TYPE_IDX) + scalar_to_bytes(TYPE_IDX)
    return grp.hash_g1(msg)


def sign_coin_indices(params, vk, sk_auth):
    """ Signs every ticket index under the aggregate key vk. """
    grp = params.grp
    vk_bytes = vk.to_bytes()
    x = sk_auth.x.value
    y0, y1, y2 = [y.value for y in sk_auth.ys[:3]]

    def sign_index(l):
        h = coin_index_hash(grp, vk_bytes, l)
        return Signature(h, (x + y0 * l + (y1 + y2) * TYPE_IDX) * h)

    signatures = par_map(sign_index, range(params.total_coins))
    logger.debug("Signed %d coin indices", len(signatures))
    return signatures


def verify_coin_indices_signatures(params, vk, vk_auth, signatures):
    """ Checks the signatures of all coin indices issued under vk against the
    key vk_auth. Raises CoinIndexSignatureError if any of them is invalid. """
    vk_auth.check_size()
    if len(signatures) != params.total_coins:
        raise CoinIndexSignatureError(
            "Expected %d coin index signatures, got %d" % (params.total_coins, len(signatures)))

    grp = params.grp
    vk_bytes = vk.to_bytes()
    tag = TYPE_IDX * vk_auth.beta_g2[1] + TYPE_IDX * vk_auth.beta_g2[2]

    def pairing_input(l):
        sig = signatures[l]
        if sig.h != coin_index_hash(grp, vk_bytes, l):
            raise CoinIndexSignatureError("Signature on coin index %d is on the wrong hash" % l)
        return (sig.h, sig.s, vk_auth.alpha + l * vk_auth.beta_g2[0] + tag)

    items = par_map(pairing_input, range(params.total_coins))
    if not batch_verify_signatures(grp.G, items):
        raise CoinIndexSignatureError("Verification of the coin index signatures failed")
    return True


def aggregate_indices_signatures(params, vk, signatures):
    """ Aggregates the coin index signatures of a quorum.

    ``signatures`` holds one ``(index, verification_key, partial_signatures)``
    triple per authority. Returns one signature per coin index.
    """
    if not signatures:
        raise AggregationError("Tried to aggregate an empty set of coin index signatures")
    indices = [index for (index, _, _) in signatures]
    coefs = lagrange_coefficients_at_origin(indices)

    def check_share(share):
        index, vk_auth, sigs = share
        try:
            return verify_coin_indices_signatures(params, vk, vk_auth, sigs)
        except CoinIndexSignatureError:
            logger.warning("Invalid coin index signatures from authority %d", index)
            raise

    par_map(check_share, signatures)

    aggregated = par_map(
        lambda l: combine_signatures(coefs, [sigs[l] for (_, _, sigs) in signatures]),
        range(params.total_coins))

    verify_coin_indices_signatures(params, vk, vk, aggregated)
    return aggregated

# ---------- TESTS -------------

@pytest.fixture(scope="module")
def authorities():
    params = setup(3, validity_period=2)
    keys = ttp_keygen(params, 2, 3)
    vk = aggregate_verification_keys([k.verification_key for k in keys], [1, 2, 3])
    return params, keys, vk

def test_sign_verify(authorities):
    params, keys, vk = authorities
    sigs = sign_coin_indices(params, vk, keys[1].secret_key)
    assert len(sigs) == params.total_coins
    assert verify_coin_indices_signatures(params, vk, keys[1].verification_key, sigs)

    with pytest.raises(CoinIndexSignatureError):
        verify_coin_indices_signatures(params, vk, keys[0].verification_key, sigs)

    # Bound to the key they were issued under
    with pytest.raises(CoinIndexSignatureError):
        verify_coin_indices_signatures(params, keys[1].verification_key,
                                       keys[1].verification_key, sigs)

    with pytest.raises(CoinIndexSignatureError):
        verify_coin_indices_signatures(params, vk, keys[1].verification_key, sigs[1:])

def test_aggregate(authorities):
    params, keys, vk = authorities
    partials = [(k.index, k.verification_key, sign_coin_indices(params, vk, k.secret_key))
                for k in keys]

    sigs = aggregate_indices_signatures(params, vk, partials[1:])
    assert verify_coin_indices_signatures(params, vk, vk, sigs)
    assert sigs == aggregate_indices_signatures(params, vk, [partials[0], partials[2]])

    with pytest.raises(AggregationError):
        aggregate_indices_signatures(params, vk, [])

    with pytest.raises(AggregationError):
        aggregate_indices_signatures(params, vk, [partials[1], partials[1]])

    index, vk_auth, bad = partials[0]
    bad = [bad[0], Signature(bad[1].h, bad[0].s), bad[2]]
    with pytest.raises(CoinIndexSignatureError):
        aggregate_indices_signatures(params, vk, [(index, vk_auth, bad), partials[1]])
