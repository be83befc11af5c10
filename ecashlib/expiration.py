""" Expiration date signatures.

For an expiration date ``exp`` every authority signs each day ``d`` of the
validity window ``[exp - window + 1, exp]`` on the attributes
``(exp, d, TYPE_EXP)``. A wallet holder presents the aggregated signature of
the day of spending, which proves that the wallet has not expired without
revealing ``exp``.
"""

import logging

from .aggregation import aggregate_verification_keys, combine_signatures
from .errors import (AggregationError, ExpirationDateError,
                     ExpirationDateSignatureError)
from .keygen import ttp_keygen
from .parallel import get_workers, par_map, set_workers
from .params import TYPE_EXP, setup
from .utils import (SECONDS_PER_DAY, Signature, batch_verify_signatures, day_timestamp,
                    lagrange_coefficients_at_origin, scalar_to_bytes)

import pytest

logger = logging.getLogger(__name__)


def date_attributes(expiration_date, validity_period):
    """ The (m0, m1, m2) attributes signed for every day of the window,
    earliest day first. """
    exp = day_timestamp(expiration_date)
    first_day = exp - (validity_period - 1) * SECONDS_PER_DAY
    return [(exp, first_day + i * SECONDS_PER_DAY, TYPE_EXP) for i in range(validity_period)]


def date_hash(grp, expiration_date, day):
    return grp.hash_g1(scalar_to_bytes(expiration_date) + scalar_to_bytes(day))


def sign_expiration_date(params, sk_auth, expiration_date):
    """ Signs every day of the validity window ending on expiration_date. """
    grp = params.grp
    x = sk_auth.x.value
    y0, y1, y2 = [y.value for y in sk_auth.ys[:3]]

    def sign_day(attributes):
        m0, m1, m2 = attributes
        h = date_hash(grp, m0, m1)
        return Signature(h, (x + y0 * m0 + y1 * m1 + y2 * m2) * h)

    signatures = par_map(sign_day, date_attributes(expiration_date, params.validity_period))
    logger.debug("Signed %d expiration date attributes", len(signatures))
    return signatures


def verify_valid_dates_signatures(params, vk, signatures, expiration_date):
    """ Checks the signatures of every day of the validity window at once.
    Raises ExpirationDateSignatureError if any of them is invalid. """
    vk.check_size()
    grp = params.grp
    attributes = date_attributes(expiration_date, params.validity_period)
    if len(signatures) != len(attributes):
        raise ExpirationDateSignatureError(
            "Expected %d expiration date signatures, got %d" % (len(attributes), len(signatures)))

    def pairing_input(item):
        (m0, m1, m2), sig = item
        if sig.h != date_hash(grp, m0, m1):
            raise ExpirationDateSignatureError("Signature on day %d is on the wrong hash" % m1)
        partial = vk.alpha + m0 * vk.beta_g2[0] + m1 * vk.beta_g2[1] + m2 * vk.beta_g2[2]
        return (sig.h, sig.s, partial)

    items = par_map(pairing_input, list(zip(attributes, signatures)))
    if not batch_verify_signatures(grp.G, items):
        raise ExpirationDateSignatureError("Verification of the expiration date signatures failed")
    return True


def aggregate_expiration_signatures(params, vk, expiration_date, signatures):
    """ Aggregates the expiration date signatures of a quorum.

    ``signatures`` holds one ``(index, verification_key, partial_signatures)``
    triple per authority. Returns one signature per day of the window.
    """
    if not signatures:
        raise AggregationError("Tried to aggregate an empty set of expiration date signatures")
    indices = [index for (index, _, _) in signatures]
    coefs = lagrange_coefficients_at_origin(indices)

    def check_share(share):
        index, vk_auth, sigs = share
        try:
            return verify_valid_dates_signatures(params, vk_auth, sigs, expiration_date)
        except ExpirationDateSignatureError:
            logger.warning("Invalid expiration date signatures from authority %d", index)
            raise

    par_map(check_share, signatures)

    days = range(params.validity_period)
    aggregated = par_map(
        lambda d: combine_signatures(coefs, [sigs[d] for (_, _, sigs) in signatures]), days)

    verify_valid_dates_signatures(params, vk, aggregated, expiration_date)
    return aggregated


def find_index(spend_date, expiration_date, validity_period):
    """ The offset of the day of spend_date within the validity window.

        Example:
            >>> find_index(86400 * 10, 86400 * 12, 5)
            2
    """
    spend = day_timestamp(spend_date)
    exp = day_timestamp(expiration_date)
    first_day = exp - (validity_period - 1) * SECONDS_PER_DAY
    if spend > exp:
        raise ExpirationDateError("The wallet has expired")
    if spend < first_day:
        raise ExpirationDateError("The spend date is before the validity window of the wallet")
    return (spend - first_day) // SECONDS_PER_DAY

# ---------- TESTS -------------

EXP = 1700000000 - 1700000000 % SECONDS_PER_DAY

@pytest.fixture(scope="module")
def authorities():
    params = setup(2, validity_period=3)
    keys = ttp_keygen(params, 2, 3)
    vk = aggregate_verification_keys([k.verification_key for k in keys], [1, 2, 3])
    return params, keys, vk

def test_find_index():
    assert find_index(EXP, EXP, 3) == 2
    assert find_index(EXP - 2 * SECONDS_PER_DAY + 5, EXP + 100, 3) == 0
    with pytest.raises(ExpirationDateError):
        find_index(EXP + SECONDS_PER_DAY, EXP, 3)
    with pytest.raises(ExpirationDateError):
        find_index(EXP - 3 * SECONDS_PER_DAY, EXP, 3)

def test_date_attributes():
    attributes = date_attributes(EXP + 17, 3)
    assert [m1 for (_, m1, _) in attributes] == [EXP - 2 * SECONDS_PER_DAY,
                                                 EXP - SECONDS_PER_DAY, EXP]
    assert all(m0 == EXP and m2 == TYPE_EXP for (m0, _, m2) in attributes)

def test_sign_verify(authorities):
    params, keys, vk = authorities
    sigs = sign_expiration_date(params, keys[0].secret_key, EXP)
    assert len(sigs) == 3
    assert verify_valid_dates_signatures(params, keys[0].verification_key, sigs, EXP)

    with pytest.raises(ExpirationDateSignatureError):
        verify_valid_dates_signatures(params, keys[1].verification_key, sigs, EXP)

    with pytest.raises(ExpirationDateSignatureError):
        verify_valid_dates_signatures(params, keys[0].verification_key, sigs,
                                      EXP + SECONDS_PER_DAY)

    with pytest.raises(ExpirationDateSignatureError):
        verify_valid_dates_signatures(params, keys[0].verification_key, sigs[:2], EXP)

def test_aggregate(authorities):
    params, keys, vk = authorities
    partials = [(k.index, k.verification_key, sign_expiration_date(params, k.secret_key, EXP))
                for k in keys]

    sigs = aggregate_expiration_signatures(params, vk, EXP, partials[:2])
    assert verify_valid_dates_signatures(params, vk, sigs, EXP)
    assert sigs == aggregate_expiration_signatures(params, vk, EXP, [partials[2], partials[0]])

    with pytest.raises(AggregationError):
        aggregate_expiration_signatures(params, vk, EXP, [partials[0], partials[0]])

    index, vk_auth, bad = partials[1]
    bad = list(bad)
    bad[1] = Signature(bad[1].h, bad[1].s + params.grp.g1)
    with pytest.raises(ExpirationDateSignatureError):
        aggregate_expiration_signatures(params, vk, EXP, [partials[0], (index, vk_auth, bad)])

def test_aggregate_workers(authorities):
    params, keys, vk = authorities
    partials = [(k.index, k.verification_key, sign_expiration_date(params, k.secret_key, EXP))
                for k in keys[1:]]

    workers = get_workers()
    try:
        set_workers(1)
        sequential = aggregate_expiration_signatures(params, vk, EXP, partials)
        set_workers(4)
        threaded = aggregate_expiration_signatures(params, vk, EXP, partials)
    finally:
        set_workers(workers)

    assert [s.to_bytes() for s in threaded] == [s.to_bytes() for s in sequential]
