""" Group parameters and protocol constants.

The group parameters are process-wide and immutable: the generators of G1
and G2, one attribute generator per attribute slot and the base ``delta`` of
the serial number function, all hashed to the curve from fixed labels.
"""

import logging
from functools import lru_cache

from .bp import BpGroup
from .utils import hash_to_scalar

import pytest

logger = logging.getLogger(__name__)

# Attribute slots: user secret, wallet secret, expiration date.
ATTRIBUTES_LEN = 3

# Days during which a wallet can be spent, ending on its expiration date.
VALIDITY_PERIOD = 30

# Type tags keeping the hashes of date and coin index signatures apart.
TYPE_EXP = hash_to_scalar(b"ECASHLIB-EXPIRATION-DATE-TYPE-01")
TYPE_IDX = hash_to_scalar(b"ECASHLIB-COIN-INDEX-TYPE-0000001")

GAMMA_LABEL = b"ECASHLIB-GAMMA-%d"
DELTA_LABEL = b"ECASHLIB-DELTA"


class GroupParameters(object):
    """ The pairing group together with the fixed generators of the scheme. """

    def __init__(self, attributes=ATTRIBUTES_LEN):
        self.G = BpGroup()
        self.g1 = self.G.gen1()
        self.g2 = self.G.gen2()
        self.gammas = [self.G.hashG1(GAMMA_LABEL % i) for i in range(attributes)]
        self.delta = self.G.hashG1(DELTA_LABEL)

    def order(self):
        return self.G.order()

    def gamma_idx(self, i):
        return self.gammas[i]

    def random_scalar(self):
        return self.G.random()

    def n_random_scalars(self, n):
        return [self.G.random() for _ in range(n)]

    def hash_g1(self, msg):
        return self.G.hashG1(msg)

    def __repr__(self):
        return "GroupParameters(attributes=%d)" % len(self.gammas)


@lru_cache(maxsize=None)
def ecash_group_parameters():
    """ The shared group parameters, built once per process. """
    logger.debug("Building group parameters with %d attributes", ATTRIBUTES_LEN)
    return GroupParameters()


class Parameters(object):
    """ Group parameters plus the per-deployment ticket budget (``total_coins``)
    and validity window in days. """

    def __init__(self, grp, total_coins, validity_period=VALIDITY_PERIOD):
        self.grp = grp
        self.total_coins = total_coins
        self.validity_period = validity_period

    def __repr__(self):
        return "Parameters(total_coins=%d, validity_period=%d)" % (
            self.total_coins, self.validity_period)


def setup(total_coins, validity_period=VALIDITY_PERIOD):
    """ Returns the parameters for wallets of total_coins tickets.

        Example:
            >>> params = setup(10)
            >>> params.total_coins, params.validity_period
            (10, 30)
    """
    if total_coins < 1:
        raise ValueError("A wallet needs at least one ticket")
    if validity_period < 1:
        raise ValueError("The validity period must be at least one day")
    return Parameters(ecash_group_parameters(), total_coins, validity_period)

# ---------- TESTS -------------

def test_group_parameters():
    grp = ecash_group_parameters()
    assert grp is ecash_group_parameters()
    assert len(grp.gammas) == ATTRIBUTES_LEN
    assert len(set(g.export() for g in grp.gammas + [grp.delta, grp.g1])) == ATTRIBUTES_LEN + 2
    assert grp.gamma_idx(1) == grp.gammas[1]
    assert all(0 < x < grp.order() for x in grp.n_random_scalars(3))

def test_type_tags():
    assert TYPE_EXP != TYPE_IDX

def test_setup():
    params = setup(5, validity_period=3)
    assert params.total_coins == 5
    assert params.validity_period == 3
    assert params.grp is ecash_group_parameters()

    with pytest.raises(ValueError):
        setup(0)
