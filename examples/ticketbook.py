""" A complete ticketbook flow with ecashlib: a quorum of authorities issues
a wallet to a user, the user pays a provider a few tickets at a time and the
provider catches the user spending the same ticket twice.

Run it with ``python examples/ticketbook.py``; set ``ECASHLIB_WORKERS`` to
spread the group operations over several threads.
"""

import logging
import time

from ecashlib.aggregation import aggregate_verification_keys
from ecashlib.coin_indices import aggregate_indices_signatures, sign_coin_indices
from ecashlib.errors import SpendExceedsAllowanceError
from ecashlib.expiration import aggregate_expiration_signatures, sign_expiration_date
from ecashlib.identify import DoubleSpendIndex
from ecashlib.keygen import generate_keypair_user, ttp_keygen
from ecashlib.params import setup
from ecashlib.payment import PayInfo, Payment
from ecashlib.utils import SECONDS_PER_DAY, day_timestamp
from ecashlib.wallet import Wallet
from ecashlib.withdrawal import (aggregate_wallets, issue, issue_verify,
                                 withdrawal_request)

import pytest

logger = logging.getLogger("ticketbook")


class Authorities(object):
    """ A set of n authorities, any t of which can issue. """

    def __init__(self, params, threshold, num_authorities):
        self.params = params
        self.keys = ttp_keygen(params, threshold, num_authorities)
        self.vk = aggregate_verification_keys([k.verification_key for k in self.keys],
                                              [k.index for k in self.keys])

    def quorum(self, indices):
        return [k for k in self.keys if k.index in indices]

    def expiration_signatures(self, expiration_date, indices):
        return aggregate_expiration_signatures(
            self.params, self.vk, expiration_date,
            [(k.index, k.verification_key,
              sign_expiration_date(self.params, k.secret_key, expiration_date))
             for k in self.quorum(indices)])

    def coin_index_signatures(self, indices):
        return aggregate_indices_signatures(
            self.params, self.vk,
            [(k.index, k.verification_key, sign_coin_indices(self.params, self.vk, k.secret_key))
             for k in self.quorum(indices)])

    def withdraw(self, user, expiration_date, indices):
        """ Runs the issuance protocol between user and the quorum. """
        request, info = withdrawal_request(self.params, user.secret_key, expiration_date)
        quorum = self.quorum(indices)
        partials = []
        for k in quorum:
            blinded = issue(self.params, k.secret_key, user.public_key, request, expiration_date)
            partials.append(issue_verify(self.params, k.verification_key, user.secret_key,
                                         blinded, info, k.index))
        wallet = aggregate_wallets(self.params, self.vk, user.secret_key, partials, info,
                                   [k.verification_key for k in quorum])
        info.wipe()
        return wallet


class Provider(object):
    """ A service provider accepting payments and keeping a double spend index. """

    def __init__(self, params, vk, public_key):
        self.params = params
        self.vk = vk
        self.public_key = public_key
        self.index = DoubleSpendIndex(params)

    def new_pay_info(self):
        return PayInfo.generate(self.public_key)

    def accept(self, payment_bytes, pay_info, spend_date):
        """ Verifies a payment and returns the public key of the spender if
        it double spends, None otherwise. """
        payment = Payment.from_bytes(payment_bytes)
        payment.spend_verify(self.params, self.vk, pay_info, spend_date)
        return self.index.add(payment, pay_info)


def main(total_coins=5, validity_period=3, threshold=2, num_authorities=3):
    params = setup(total_coins, validity_period=validity_period)
    today = day_timestamp(int(time.time()))
    expiration_date = today + (validity_period - 1) * SECONDS_PER_DAY

    t0 = time.time()
    authorities = Authorities(params, threshold, num_authorities)
    quorum = list(range(1, threshold + 1))
    dates = authorities.expiration_signatures(expiration_date, quorum)
    indices = authorities.coin_index_signatures(quorum)
    logger.info("Authorities ready in %.2fs", time.time() - t0)

    user = generate_keypair_user(params)
    t0 = time.time()
    wallet = authorities.withdraw(user, expiration_date, quorum)
    stored = wallet.to_bytes()
    logger.info("Wallet of %d tickets issued in %.2fs", total_coins, time.time() - t0)

    provider = Provider(params, authorities.vk, b"\x42" * 32)
    while wallet.tickets_spent < total_coins:
        spend_value = min(2, total_coins - wallet.tickets_spent)
        pay_info = provider.new_pay_info()
        t0 = time.time()
        payment = wallet.spend(params, authorities.vk, user.secret_key, pay_info, spend_value,
                               dates, indices, today)
        provider.accept(payment.to_bytes(), pay_info, today)
        logger.info("Paid %d ticket(s) in %.2fs, %d spent", spend_value, time.time() - t0,
                    wallet.tickets_spent)

    try:
        wallet.spend(params, authorities.vk, user.secret_key, provider.new_pay_info(), 1,
                     dates, indices, today)
    except SpendExceedsAllowanceError as e:
        logger.info("Wallet exhausted: %s", e)

    # Replaying the stored wallet spends the first ticket again
    cheat = Wallet.from_bytes(stored)
    pay_info = provider.new_pay_info()
    payment = cheat.spend(params, authorities.vk, user.secret_key, pay_info, 1, dates, indices,
                          today)
    culprit = provider.accept(payment.to_bytes(), pay_info, today)
    logger.info("Double spender identified: %s", culprit == user.public_key)
    return culprit == user.public_key

# ---------- TESTS -------------

EXP = 1700000000 - 1700000000 % SECONDS_PER_DAY

@pytest.fixture(scope="module")
def deployment():
    params = setup(3, validity_period=2)
    authorities = Authorities(params, 2, 3)
    dates = authorities.expiration_signatures(EXP, [2, 3])
    indices = authorities.coin_index_signatures([1, 3])
    return params, authorities, dates, indices

def test_withdraw(deployment):
    params, authorities, _, _ = deployment
    user = generate_keypair_user(params, seed=b"test user")
    wallet = authorities.withdraw(user, EXP, [1, 2])
    assert wallet.tickets_spent == 0
    assert wallet.sig.verify(params.grp.G, authorities.vk,
                             [user.secret_key.sk.value, wallet.v.value, EXP])

def test_pay_and_catch(deployment):
    params, authorities, dates, indices = deployment
    user = generate_keypair_user(params)
    wallet = authorities.withdraw(user, EXP, [1, 3])
    stored = wallet.to_bytes()
    provider = Provider(params, authorities.vk, b"\x42" * 32)

    pay_info = provider.new_pay_info()
    payment = wallet.spend(params, authorities.vk, user.secret_key, pay_info, 2, dates,
                           indices, EXP)
    assert provider.accept(payment.to_bytes(), pay_info, EXP) is None

    pay_info = provider.new_pay_info()
    payment = Wallet.from_bytes(stored).spend(params, authorities.vk, user.secret_key,
                                              pay_info, 1, dates, indices, EXP)
    assert provider.accept(payment.to_bytes(), pay_info, EXP) == user.public_key


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    main()
