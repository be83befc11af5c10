""" Wallets and the spend protocol.

A ``Wallet`` holds the aggregated signature on (sk, v, t), the wallet secret
``v``, the expiration date ``t`` and the number of tickets spent so far.
Spending ``k`` tickets discloses, for each ticket index ``lk`` used, the
serial number ``delta * 1/(v + lk + 1)`` and the tag
``g1*sk + R_k * g1 * 1/(v + lk + 1)``, and proves in zero-knowledge that they
are consistent with a wallet signed by the authorities.
"""

import logging

from .bp import BpGroup, G1_BYTES
from .errors import (CoinIndexSignatureError, DeserializationLengthMismatchError,
                     ExpirationDateError, ExpirationDateSignatureError,
                     SpendExceedsAllowanceError, UnluckiestError)
from .aggregation import aggregate_verification_keys
from .coin_indices import aggregate_indices_signatures, sign_coin_indices
from .expiration import aggregate_expiration_signatures, find_index, sign_expiration_date
from .keygen import generate_keypair_user, ttp_keygen
from .parallel import par_map
from .params import setup
from .payment import PayInfo, Payment, compute_pay_info_hash
from .proofs import SpendInstance, SpendProof, SpendWitness
from .secret import SecretScalar
from .utils import SCALAR_BYTES, Signature, day_timestamp, try_deserialize_scalar

import pytest

logger = logging.getLogger(__name__)

WALLET_BYTES = 2 * G1_BYTES + 2 * SCALAR_BYTES + 8


def _prf_exponent(params, v, l):
    o = params.grp.order()
    denominator = (v + l + 1) % o
    if denominator == 0:
        raise UnluckiestError("v + l + 1 is zero, the pseudorandom function is undefined")
    return pow(denominator, -1, o)


def pseudorandom_f_delta_v(params, v, l):
    """ The serial number of ticket l of the wallet with secret v. """
    return params.grp.delta * _prf_exponent(params, v, l)


def pseudorandom_f_g_v(params, v, l):
    return params.grp.g1 * _prf_exponent(params, v, l)


def _to_bytes(sig, v, expiration_date, counter):
    return sig.to_bytes() + v.to_bytes() + \
        expiration_date.to_bytes(SCALAR_BYTES, "little") + counter.to_bytes(8, "little")


def _from_bytes(sbin, type_name, G):
    if len(sbin) != WALLET_BYTES:
        raise DeserializationLengthMismatchError(type_name, WALLET_BYTES, len(sbin))
    sig = Signature.from_bytes(sbin[:2 * G1_BYTES], G or BpGroup())
    v = SecretScalar.from_bytes(sbin[2 * G1_BYTES:2 * G1_BYTES + SCALAR_BYTES])
    expiration_date = try_deserialize_scalar(sbin[2 * G1_BYTES + SCALAR_BYTES:-8], type_name)
    counter = int.from_bytes(sbin[-8:], "little")
    return sig, v, expiration_date, counter


class PartialWallet(object):
    """ The unblinded signature of one authority on a wallet. """

    def __init__(self, sig, v, expiration_date, idx):
        self.sig = sig
        self.v = SecretScalar(v)
        self.expiration_date = expiration_date
        self.idx = idx

    def signature(self):
        return self.sig

    def index(self):
        return self.idx

    def to_bytes(self):
        return _to_bytes(self.sig, self.v, self.expiration_date, self.idx)

    @staticmethod
    def from_bytes(sbin, G=None):
        sig, v, expiration_date, idx = _from_bytes(sbin, "PartialWallet", G)
        return PartialWallet(sig, v, expiration_date, idx)

    def __eq__(self, other):
        return isinstance(other, PartialWallet) and self.to_bytes() == other.to_bytes()

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return "PartialWallet(idx=%d)" % self.idx


class Wallet(object):

    def __init__(self, sig, v, expiration_date, tickets_spent=0):
        self.sig = sig
        self.v = SecretScalar(v)
        self.expiration_date = expiration_date
        self._tickets_spent = tickets_spent

    @property
    def tickets_spent(self):
        return self._tickets_spent

    def signature(self):
        return self.sig

    def to_bytes(self):
        return _to_bytes(self.sig, self.v, self.expiration_date, self._tickets_spent)

    @staticmethod
    def from_bytes(sbin, G=None):
        sig, v, expiration_date, tickets_spent = _from_bytes(sbin, "Wallet", G)
        return Wallet(sig, v, expiration_date, tickets_spent)

    def check_remaining_allowance(self, params, spend_value):
        remaining = params.total_coins - self._tickets_spent
        if spend_value > remaining:
            raise SpendExceedsAllowanceError(spend_value, remaining)

    def spend(self, params, vk, sk_user, pay_info, spend_value, valid_dates_signatures,
              coin_indices_signatures, spend_date):
        """ Spends spend_value tickets in the context pay_info on spend_date.

        valid_dates_signatures are the aggregated signatures of every day of
        the wallet's validity window and coin_indices_signatures the
        aggregated signatures of all coin indices. Returns the Payment and
        only then advances the counter of spent tickets.
        """
        if spend_value < 1:
            raise ValueError("A payment spends at least one ticket")
        self.check_remaining_allowance(params, spend_value)
        vk.check_size()
        if len(valid_dates_signatures) != params.validity_period:
            raise ExpirationDateSignatureError(
                "Expected %d expiration date signatures, got %d"
                % (params.validity_period, len(valid_dates_signatures)))
        if len(coin_indices_signatures) != params.total_coins:
            raise CoinIndexSignatureError(
                "Expected %d coin index signatures, got %d"
                % (params.total_coins, len(coin_indices_signatures)))

        grp = params.grp
        G = grp.G
        g1, g2, gamma0 = grp.g1, grp.g2, grp.gammas[0]
        alpha, beta = vk.alpha, vk.beta_g2
        o = grp.order()

        sk = sk_user.sk.value
        v = self.v.value
        t = self.expiration_date
        l = self._tickets_spent

        date_index = find_index(spend_date, t, params.validity_period)

        # Randomise the wallet and expiration date signatures
        sig, r = self.sig.randomise(G)
        kappa = g2 * r + alpha + beta[0] * sk + beta[1] * v + beta[2] * t
        sig_exp, r_e = valid_dates_signatures[date_index].randomise(G)
        kappa_e = g2 * r_e + alpha + beta[0] * t

        # Commit to the wallet secret
        o_c = grp.random_scalar()
        cc = g1 * o_c + gamma0 * v

        rr = [compute_pay_info_hash(pay_info, k) for k in range(spend_value)]

        def ticket(k):
            lk = l + k
            o_a = grp.random_scalar()
            aa = g1 * o_a + gamma0 * lk
            mu = _prf_exponent(params, v, lk)
            ss = pseudorandom_f_delta_v(params, v, lk)
            tt = g1 * sk + pseudorandom_f_g_v(params, v, lk) * rr[k]
            omega, r_k = coin_indices_signatures[lk].randomise(G)
            kappa_k = g2 * r_k + alpha + beta[0] * lk
            o_mu = (-(o_a + o_c) * mu) % o
            return (lk, o_a, aa, mu, ss, tt, omega, r_k, kappa_k, o_mu)

        tickets = par_map(ticket, range(spend_value))
        lk, o_a, aa, mu, ss, tt, omega, r_k, kappa_k, o_mu = [list(x) for x in zip(*tickets)]

        instance = SpendInstance(kappa, cc, aa, ss, tt, kappa_k, kappa_e)
        witness = SpendWitness([sk, v, t], r, r_e, o_c, lk, o_a, mu, o_mu, r_k)
        try:
            zk_proof = SpendProof.construct(params, instance, witness, vk, rr, pay_info.payinfo,
                                            spend_value)
        finally:
            witness.wipe()

        payment = Payment(kappa, kappa_e, sig, sig_exp, kappa_k, omega, ss, tt, aa, spend_value,
                          cc, zk_proof)

        self._tickets_spent += spend_value
        logger.debug("Spent %d tickets, %d of %d used", spend_value, self._tickets_spent,
                     params.total_coins)
        return payment

    def __repr__(self):
        return "Wallet(tickets_spent=%d)" % self._tickets_spent

# ---------- TESTS -------------

def test_prf():
    params = setup(3)
    o = params.grp.order()
    assert pseudorandom_f_delta_v(params, 5, 1) == params.grp.delta * pow(7, -1, o)
    assert pseudorandom_f_g_v(params, 5, 1) != pseudorandom_f_g_v(params, 5, 2)

    with pytest.raises(UnluckiestError):
        pseudorandom_f_delta_v(params, o - 3, 2)

def test_wallet_io():
    G = BpGroup()
    sig = Signature(G.hashG1(b"h"), 5 * G.gen1())
    wallet = Wallet(sig, 1234, day_timestamp(1700000000), 3)
    buf = wallet.to_bytes()
    assert len(buf) == WALLET_BYTES == 168
    wallet2 = Wallet.from_bytes(buf, G)
    assert wallet2.tickets_spent == 3
    assert wallet2.v.value == 1234
    assert wallet2.sig == sig
    assert wallet2.to_bytes() == buf

    partial = PartialWallet(sig, 99, 86400, 2)
    assert PartialWallet.from_bytes(partial.to_bytes(), G) == partial

    with pytest.raises(DeserializationLengthMismatchError):
        Wallet.from_bytes(buf[:-1], G)

def test_allowance():
    G = BpGroup()
    params = setup(3)
    wallet = Wallet(Signature(G.gen1(), G.gen1()), 1, 0, 2)
    wallet.check_remaining_allowance(params, 1)
    with pytest.raises(SpendExceedsAllowanceError) as excinfo:
        wallet.check_remaining_allowance(params, 2)
    assert excinfo.value.remaining == 1

def _ticketbook(total_coins, validity_period, expiration_date):
    """ Issues a wallet from 2 out of 3 authorities together with the
    aggregated expiration date and coin index signatures. """
    from .withdrawal import aggregate_wallets, issue, issue_verify, withdrawal_request

    params = setup(total_coins, validity_period=validity_period)
    keys = ttp_keygen(params, 2, 3)
    vk = aggregate_verification_keys([k.verification_key for k in keys], [1, 2, 3])
    quorum = keys[:2]

    user = generate_keypair_user(params)
    request, info = withdrawal_request(params, user.secret_key, expiration_date)
    partials = [issue_verify(params, k.verification_key, user.secret_key,
                             issue(params, k.secret_key, user.public_key, request,
                                   expiration_date), info, k.index)
                for k in quorum]
    wallet = aggregate_wallets(params, vk, user.secret_key, partials, info,
                               [k.verification_key for k in quorum])

    dates = aggregate_expiration_signatures(
        params, vk, expiration_date,
        [(k.index, k.verification_key, sign_expiration_date(params, k.secret_key,
                                                             expiration_date))
         for k in quorum])
    indices = aggregate_indices_signatures(
        params, vk,
        [(k.index, k.verification_key, sign_coin_indices(params, vk, k.secret_key))
         for k in quorum])
    return params, vk, user, wallet.to_bytes(), dates, indices

EXP = 1700000000 - 1700000000 % 86400

@pytest.fixture(scope="module")
def ticketbook():
    return _ticketbook(3, 2, EXP)

def test_spend_verify(ticketbook):
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    wallet = Wallet.from_bytes(wallet_bytes)
    pay_info = PayInfo.generate(b"\x01" * 32)

    payment = wallet.spend(params, vk, user.secret_key, pay_info, 2, dates, indices, EXP)
    assert wallet.tickets_spent == 2
    assert payment.spend_value == 2
    assert len(payment.serial_number()) == 2
    assert payment.spend_verify(params, vk, pay_info, EXP)

    payment2 = Payment.from_bytes(payment.to_bytes())
    assert payment2 == payment
    assert payment2.spend_verify(params, vk, pay_info, EXP)

def test_spend_allowance(ticketbook):
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    wallet = Wallet.from_bytes(wallet_bytes)

    wallet.spend(params, vk, user.secret_key, PayInfo.generate(b"\x01" * 32), 2, dates,
                 indices, EXP)
    with pytest.raises(SpendExceedsAllowanceError):
        wallet.spend(params, vk, user.secret_key, PayInfo.generate(b"\x01" * 32), 2, dates,
                     indices, EXP)
    assert wallet.tickets_spent == 2

    # Exactly the whole budget
    payment = wallet.spend(params, vk, user.secret_key, PayInfo.generate(b"\x01" * 32), 1,
                           dates, indices, EXP)
    assert wallet.tickets_spent == params.total_coins
    assert payment.spend_value == 1

    with pytest.raises(SpendExceedsAllowanceError):
        wallet.spend(params, vk, user.secret_key, PayInfo.generate(b"\x01" * 32), 1, dates,
                     indices, EXP)

def test_spend_window(ticketbook):
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    wallet = Wallet.from_bytes(wallet_bytes)
    pay_info = PayInfo.generate(b"\x01" * 32)

    # The first day of the window
    payment = wallet.spend(params, vk, user.secret_key, pay_info, 1, dates, indices,
                           EXP - 86400 + 3600)
    assert payment.spend_verify(params, vk, pay_info, EXP - 86400)

    with pytest.raises(ExpirationDateError):
        wallet.spend(params, vk, user.secret_key, pay_info, 1, dates, indices, EXP + 86400)
    with pytest.raises(ExpirationDateError):
        wallet.spend(params, vk, user.secret_key, pay_info, 1, dates, indices, EXP - 2 * 86400)
    assert wallet.tickets_spent == 1

def test_spend_unlinkable(ticketbook):
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    pay_info = PayInfo.generate(b"\x01" * 32)

    payment1 = Wallet.from_bytes(wallet_bytes).spend(params, vk, user.secret_key, pay_info, 1,
                                                     dates, indices, EXP)
    payment2 = Wallet.from_bytes(wallet_bytes).spend(params, vk, user.secret_key, pay_info, 1,
                                                     dates, indices, EXP)
    # Same ticket, same serial number, but freshly randomised disclosures
    assert payment1.ss == payment2.ss
    assert payment1.kappa != payment2.kappa
    assert payment1.sig != payment2.sig
    assert payment1.cc != payment2.cc

def test_spend_unluckiest(ticketbook):
    params, vk, user, wallet_bytes, dates, indices = ticketbook
    issued = Wallet.from_bytes(wallet_bytes)

    # v + 0 + 1 is zero for the first ticket
    wallet = Wallet(issued.sig, params.grp.order() - 1, issued.expiration_date)
    with pytest.raises(UnluckiestError):
        wallet.spend(params, vk, user.secret_key, PayInfo.generate(b"\x01" * 32), 1, dates,
                     indices, EXP)
    assert wallet.tickets_spent == 0
