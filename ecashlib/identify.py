""" Double-spend identification.

Spending the same ticket twice discloses the same serial number twice, with
tags ``T_i = g1*sk + R_i * g1 * mu`` for two different payment contexts. The
two tags are affine in ``g1*sk`` with distinct multipliers, so
``(R_2*T_1 - R_1*T_2) / (R_2 - R_1)`` recovers the public key of the spender.
"""

import logging

from .errors import IdentifyError
from .keygen import PublicKeyUser
from .payment import PayInfo, compute_pay_info_hash

import pytest

logger = logging.getLogger(__name__)


def identify(params, payment1, payment2, pay_info1, pay_info2):
    """ Returns the PublicKeyUser of the spender if the two payments share a
    serial number, and None otherwise. """
    o = params.grp.order()
    offsets = dict((s.export(), k) for k, s in enumerate(payment1.ss))

    for k2, s2 in enumerate(payment2.ss):
        k1 = offsets.get(s2.export())
        if k1 is None:
            continue

        r1 = compute_pay_info_hash(pay_info1, k1)
        r2 = compute_pay_info_hash(pay_info2, k2)
        if r1 == r2:
            raise IdentifyError("Both payments are for the same context, this is a replay")

        t1, t2 = payment1.tt[k1], payment2.tt[k2]
        pk = (r2 * t1 - r1 * t2) * pow((r2 - r1) % o, -1, o)
        logger.warning("Identified a double spend of serial number %s", s2)
        return PublicKeyUser(pk)

    return None


class DoubleSpendIndex(object):
    """ An in-memory index from serial number to the first payment (and its
    context) that disclosed it. """

    def __init__(self, params):
        self.params = params
        self._seen = {}

    def __len__(self):
        return len(self._seen)

    def __contains__(self, serial):
        return serial.export() in self._seen

    def add(self, payment, pay_info):
        """ Records the serial numbers of an accepted payment. If one of them
        was already recorded, records nothing and returns the public key of
        the double spender. """
        for s in payment.ss:
            previous = self._seen.get(s.export())
            if previous is not None:
                first_payment, first_pay_info = previous
                return identify(self.params, first_payment, payment, first_pay_info, pay_info)

        for s in payment.ss:
            self._seen[s.export()] = (payment, pay_info)
        return None

# ---------- TESTS -------------

EXP = 1700000000 - 1700000000 % 86400

@pytest.fixture(scope="module")
def ticketbook():
    from .wallet import _ticketbook
    return _ticketbook(4, 2, EXP)

def _spend(ticketbook, spend_value, pay_info, tickets_spent=0):
    from .wallet import Wallet
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    issued = Wallet.from_bytes(wallet_bytes)
    wallet = Wallet(issued.sig, issued.v, issued.expiration_date, tickets_spent)
    return wallet.spend(params, vk, user.secret_key, pay_info, spend_value, dates, indices, EXP)

def test_identify(ticketbook):
    params, vk, user, _, _, _ = ticketbook
    pay_info1 = PayInfo.generate(b"\x03" * 32)
    pay_info2 = PayInfo.generate(b"\x04" * 32)

    payment1 = _spend(ticketbook, 1, pay_info1)
    payment2 = _spend(ticketbook, 1, pay_info2)
    assert payment1.spend_verify(params, vk, pay_info1, EXP)
    assert payment2.spend_verify(params, vk, pay_info2, EXP)

    assert payment1.serial_number() == payment2.serial_number()
    assert identify(params, payment1, payment2, pay_info1, pay_info2) == user.public_key

def test_identify_offsets(ticketbook):
    params, vk, user, _, _, _ = ticketbook
    pay_info1 = PayInfo.generate(b"\x03" * 32)
    pay_info2 = PayInfo.generate(b"\x04" * 32)

    # Tickets 0 and 1, then tickets 1 and 2
    payment1 = _spend(ticketbook, 2, pay_info1)
    payment2 = _spend(ticketbook, 2, pay_info2, tickets_spent=1)
    assert payment1.ss[1] == payment2.ss[0]
    assert identify(params, payment1, payment2, pay_info1, pay_info2) == user.public_key

def test_no_false_positive(ticketbook):
    params, _, _, _, _, _ = ticketbook
    pay_info1 = PayInfo.generate(b"\x03" * 32)
    pay_info2 = PayInfo.generate(b"\x04" * 32)

    payment1 = _spend(ticketbook, 1, pay_info1)
    payment2 = _spend(ticketbook, 1, pay_info2, tickets_spent=1)
    assert payment1.ss[0] != payment2.ss[0]
    assert identify(params, payment1, payment2, pay_info1, pay_info2) is None

def test_replay(ticketbook):
    params, _, _, _, _, _ = ticketbook
    pay_info = PayInfo.generate(b"\x03" * 32)
    payment = _spend(ticketbook, 1, pay_info)
    with pytest.raises(IdentifyError):
        identify(params, payment, payment, pay_info, pay_info)

def test_double_spend_index(ticketbook):
    params, _, user, _, _, _ = ticketbook
    index = DoubleSpendIndex(params)
    pay_info1 = PayInfo.generate(b"\x05" * 32)
    pay_info2 = PayInfo.generate(b"\x06" * 32)
    pay_info3 = PayInfo.generate(b"\x07" * 32)

    payment1 = _spend(ticketbook, 2, pay_info1)
    assert index.add(payment1, pay_info1) is None
    assert len(index) == 2
    assert payment1.ss[0] in index

    payment2 = _spend(ticketbook, 1, pay_info2, tickets_spent=2)
    assert index.add(payment2, pay_info2) is None
    assert len(index) == 3

    payment3 = _spend(ticketbook, 1, pay_info3, tickets_spent=1)
    assert index.add(payment3, pay_info3) == user.public_key
    assert len(index) == 3
