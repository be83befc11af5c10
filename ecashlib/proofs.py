""" Non-interactive zero-knowledge proofs of knowledge (Schnorr proofs made
non-interactive with the Fiat-Shamir heuristic).

Every proof picks fresh witnesses ``w``, commits to them, derives the
challenge ``c`` by hashing the public instance together with the commitments
and answers with ``r = w - c*x``. The verifier recomputes each commitment as
``c*X + sum(r_i * base_i)`` and checks that it arrives at the same challenge.

``WithdrawalReqProof`` shows that a withdrawal request commits to the
secret key behind the user's public key. ``SpendProof`` shows that a payment
discloses serial numbers and tags computed from a validly signed wallet, for
signed coin indices and an unexpired date.
"""

import logging

from .errors import DeserializationError
from .keygen import PublicKeyUser, SecretKeyAuth
from .pack import decode, encode
from .parallel import par_map
from .params import setup
from .secret import SecretScalar
from .utils import scalar_to_bytes, to_challenge, try_deserialize_scalar

import pytest

logger = logging.getLogger(__name__)


def _scalars_to_bytes(xs):
    return [scalar_to_bytes(x) for x in xs]


def _scalars_from_bytes(xs, type_name):
    if not isinstance(xs, list) or not all(isinstance(x, bytes) for x in xs):
        raise DeserializationError("Failed to deserialize %s: expected a list of scalars" % type_name)
    return [try_deserialize_scalar(x, type_name) for x in xs]


def _secrets(xs):
    return [SecretScalar(x) for x in xs]


def _values(xs):
    return [x.value for x in xs]


class WithdrawalReqInstance(object):
    """ com = g1*o + gammas[0]*sk + gammas[1]*v, pc_i = g1*o_i + h*m_i and
    pk_user = g1*sk. """

    def __init__(self, com, h, pc_coms, pk_user):
        self.com = com
        self.h = h
        self.pc_coms = pc_coms
        self.pk_user = pk_user

    def elements(self):
        return [self.com, self.h] + self.pc_coms + [self.pk_user.pk]


class WithdrawalReqWitness(object):

    def __init__(self, private_attributes, com_opening, pc_openings):
        self.private_attributes = _secrets(private_attributes)
        self.com_opening = SecretScalar(com_opening)
        self.pc_openings = _secrets(pc_openings)

    def wipe(self):
        for x in self.private_attributes + self.pc_openings + [self.com_opening]:
            x.wipe()


class WithdrawalReqProof(object):

    def __init__(self, challenge, response_opening, response_openings, response_attributes):
        self.challenge = challenge
        self.response_opening = response_opening
        self.response_openings = response_openings
        self.response_attributes = response_attributes

    @staticmethod
    def _challenge(params, instance, commitments):
        grp = params.grp
        n = len(instance.pc_coms)
        return to_challenge([grp.g1] + grp.gammas[:n] + instance.elements() + commitments)

    @staticmethod
    def construct(params, instance, witness):
        grp = params.grp
        g1, h = grp.g1, instance.h
        o = grp.order()
        attributes = _values(witness.private_attributes)
        openings = _values(witness.pc_openings)
        n = len(attributes)

        # Witnesses
        w_o = grp.random_scalar()
        w_os = grp.n_random_scalars(n)
        w_m = grp.n_random_scalars(n)

        # Commitments
        com_w = g1 * w_o + grp.G.wsum(w_m, grp.gammas[:n])
        pc_w = [g1 * w_os[i] + h * w_m[i] for i in range(n)]
        pk_w = g1 * w_m[0]

        c = WithdrawalReqProof._challenge(params, instance, [com_w] + pc_w + [pk_w])

        # Responses
        r_o = (w_o - c * witness.com_opening.value) % o
        r_os = [(w_os[i] - c * openings[i]) % o for i in range(n)]
        r_m = [(w_m[i] - c * attributes[i]) % o for i in range(n)]
        return WithdrawalReqProof(c, r_o, r_os, r_m)

    def verify(self, params, instance):
        grp = params.grp
        g1, h = grp.g1, instance.h
        c = self.challenge
        n = len(instance.pc_coms)
        if n == 0 or len(self.response_openings) != n or len(self.response_attributes) != n:
            return False

        com_w = c * instance.com + g1 * self.response_opening + \
            grp.G.wsum(self.response_attributes, grp.gammas[:n])
        pc_w = [c * instance.pc_coms[i] + g1 * self.response_openings[i] +
                h * self.response_attributes[i] for i in range(n)]
        pk_w = c * instance.pk_user.pk + g1 * self.response_attributes[0]

        return c == WithdrawalReqProof._challenge(params, instance, [com_w] + pc_w + [pk_w])

    def to_bytes(self):
        return encode([scalar_to_bytes(self.challenge), scalar_to_bytes(self.response_opening),
                       _scalars_to_bytes(self.response_openings),
                       _scalars_to_bytes(self.response_attributes)])

    @staticmethod
    def from_bytes(sbin):
        data = decode(sbin)
        if not isinstance(data, list) or len(data) != 4:
            raise DeserializationError("Failed to deserialize WithdrawalReqProof")
        c, r_o = _scalars_from_bytes(data[:2], "WithdrawalReqProof")
        return WithdrawalReqProof(c, r_o,
                                  _scalars_from_bytes(data[2], "WithdrawalReqProof"),
                                  _scalars_from_bytes(data[3], "WithdrawalReqProof"))


class SpendInstance(object):
    """ The public values of a payment covered by the spend proof. """

    def __init__(self, kappa, cc, aa, ss, tt, kappa_k, kappa_e):
        self.kappa = kappa
        self.cc = cc
        self.aa = aa
        self.ss = ss
        self.tt = tt
        self.kappa_k = kappa_k
        self.kappa_e = kappa_e

    def elements(self):
        return [self.kappa, self.cc, self.kappa_e] + self.aa + self.ss + self.tt + self.kappa_k


class SpendWitness(object):
    """ The secrets behind a payment.

    ``attributes`` are (sk, v, t) with t the expiration date; ``r``, ``r_e``
    and ``r_k`` blind the wallet, date and coin index signatures; ``o_c``,
    ``o_a`` open the commitments to v and to the coin indices ``lk``;
    ``mu[k] = 1/(v + lk + 1)`` and ``o_mu[k] = -(o_a[k] + o_c)*mu[k]``.
    """

    def __init__(self, attributes, r, r_e, o_c, lk, o_a, mu, o_mu, r_k):
        self.attributes = _secrets(attributes)
        self.r = SecretScalar(r)
        self.r_e = SecretScalar(r_e)
        self.o_c = SecretScalar(o_c)
        self.lk = _secrets(lk)
        self.o_a = _secrets(o_a)
        self.mu = _secrets(mu)
        self.o_mu = _secrets(o_mu)
        self.r_k = _secrets(r_k)

    def wipe(self):
        for x in self.attributes + self.lk + self.o_a + self.mu + self.o_mu + self.r_k + \
                [self.r, self.r_e, self.o_c]:
            x.wipe()


class SpendProof(object):

    def __init__(self, challenge, response_r, response_r_e, response_o_c, response_attributes,
                 response_lk, response_o_a, response_mu, response_o_mu, response_r_k):
        self.challenge = challenge
        self.response_r = response_r
        self.response_r_e = response_r_e
        self.response_o_c = response_o_c
        self.response_attributes = response_attributes
        self.response_lk = response_lk
        self.response_o_a = response_o_a
        self.response_mu = response_mu
        self.response_o_mu = response_o_mu
        self.response_r_k = response_r_k

    @staticmethod
    def _challenge(params, vk, instance, commitments, rr, pay_info, spend_value):
        grp = params.grp
        return to_challenge([grp.g1, grp.g2, grp.delta, grp.gammas[0], vk.alpha]
                            + vk.beta_g2[:3] + instance.elements() + commitments
                            + list(rr) + [pay_info, spend_value])

    @staticmethod
    def construct(params, instance, witness, vk, rr, pay_info, spend_value):
        """ Proves the spend relations. ``rr`` holds the per ticket hashes R_k
        and ``pay_info`` the bytes of the payment context. """
        grp = params.grp
        g1, g2, gamma0, delta = grp.g1, grp.g2, grp.gammas[0], grp.delta
        beta = vk.beta_g2
        o = grp.order()
        k = spend_value

        # Witnesses
        w_sk, w_v, w_t = grp.n_random_scalars(3)
        w_r, w_re, w_oc = grp.n_random_scalars(3)
        w_lk, w_oa, w_mu, w_omu, w_rk = [grp.n_random_scalars(k) for _ in range(5)]

        # Commitments
        cm_kappa = g2 * w_r + beta[0] * w_sk + beta[1] * w_v + beta[2] * w_t
        cm_kappa_e = g2 * w_re + beta[0] * w_t
        cm_cc = g1 * w_oc + gamma0 * w_v

        def ticket_commitments(i):
            return [g1 * w_oa[i] + gamma0 * w_lk[i],
                    g2 * w_rk[i] + beta[0] * w_lk[i],
                    delta * w_mu[i],
                    g1 * (w_sk + rr[i] * w_mu[i]),
                    (instance.aa[i] + instance.cc + gamma0) * w_mu[i] + g1 * w_omu[i]]

        per_ticket = par_map(ticket_commitments, range(k))
        commitments = [cm_kappa, cm_kappa_e, cm_cc] + [cm for cms in per_ticket for cm in cms]

        c = SpendProof._challenge(params, vk, instance, commitments, rr, pay_info, spend_value)

        # Responses
        def respond(ws, xs):
            return [(w - c * x) % o for w, x in zip(ws, _values(xs))]

        return SpendProof(
            c,
            respond([w_r], [witness.r])[0],
            respond([w_re], [witness.r_e])[0],
            respond([w_oc], [witness.o_c])[0],
            respond([w_sk, w_v, w_t], witness.attributes),
            respond(w_lk, witness.lk),
            respond(w_oa, witness.o_a),
            respond(w_mu, witness.mu),
            respond(w_omu, witness.o_mu),
            respond(w_rk, witness.r_k))

    def verify(self, params, instance, vk, rr, pay_info, spend_value):
        grp = params.grp
        g1, g2, gamma0, delta = grp.g1, grp.g2, grp.gammas[0], grp.delta
        beta, alpha = vk.beta_g2, vk.alpha
        c = self.challenge
        k = spend_value

        per_ticket_lists = [self.response_lk, self.response_o_a, self.response_mu,
                            self.response_o_mu, self.response_r_k, instance.aa, instance.ss,
                            instance.tt, instance.kappa_k, rr]
        if k < 1 or any(len(x) != k for x in per_ticket_lists):
            return False
        if len(self.response_attributes) != 3 or len(beta) < 3:
            return False
        r_sk, r_v, r_t = self.response_attributes

        cm_kappa = c * (instance.kappa - alpha) + g2 * self.response_r + \
            beta[0] * r_sk + beta[1] * r_v + beta[2] * r_t
        cm_kappa_e = c * (instance.kappa_e - alpha) + g2 * self.response_r_e + beta[0] * r_t
        cm_cc = c * instance.cc + g1 * self.response_o_c + gamma0 * r_v

        def ticket_commitments(i):
            r_mu = self.response_mu[i]
            return [c * instance.aa[i] + g1 * self.response_o_a[i] + gamma0 * self.response_lk[i],
                    c * (instance.kappa_k[i] - alpha) + g2 * self.response_r_k[i] +
                    beta[0] * self.response_lk[i],
                    c * instance.ss[i] + delta * r_mu,
                    c * instance.tt[i] + g1 * (r_sk + rr[i] * r_mu),
                    c * gamma0 + (instance.aa[i] + instance.cc + gamma0) * r_mu +
                    g1 * self.response_o_mu[i]]

        per_ticket = par_map(ticket_commitments, range(k))
        commitments = [cm_kappa, cm_kappa_e, cm_cc] + [cm for cms in per_ticket for cm in cms]

        return c == SpendProof._challenge(params, vk, instance, commitments, rr, pay_info,
                                          spend_value)

    def to_bytes(self):
        return encode([
            _scalars_to_bytes([self.challenge, self.response_r, self.response_r_e,
                               self.response_o_c]),
            _scalars_to_bytes(self.response_attributes),
            _scalars_to_bytes(self.response_lk),
            _scalars_to_bytes(self.response_o_a),
            _scalars_to_bytes(self.response_mu),
            _scalars_to_bytes(self.response_o_mu),
            _scalars_to_bytes(self.response_r_k)])

    @staticmethod
    def from_bytes(sbin):
        data = decode(sbin)
        if not isinstance(data, list) or len(data) != 7:
            raise DeserializationError("Failed to deserialize SpendProof")
        fields = [_scalars_from_bytes(x, "SpendProof") for x in data]
        if len(fields[0]) != 4:
            raise DeserializationError("Failed to deserialize SpendProof")
        c, r_r, r_re, r_oc = fields[0]
        return SpendProof(c, r_r, r_re, r_oc, *fields[1:])

    def __eq__(self, other):
        return isinstance(other, SpendProof) and self.to_bytes() == other.to_bytes()

    def __ne__(self, other):
        return not self.__eq__(other)

# ---------- TESTS -------------

def _withdrawal_statement(params):
    grp = params.grp
    g1 = grp.g1
    sk, v, o = grp.n_random_scalars(3)
    com = g1 * o + grp.gammas[0] * sk + grp.gammas[1] * v
    h = grp.hash_g1(com.export())
    os = grp.n_random_scalars(2)
    pc = [g1 * os[0] + h * sk, g1 * os[1] + h * v]
    instance = WithdrawalReqInstance(com, h, pc, PublicKeyUser(g1 * sk))
    return instance, WithdrawalReqWitness([sk, v], o, os)

def test_withdrawal_proof():
    params = setup(2)
    instance, witness = _withdrawal_statement(params)
    proof = WithdrawalReqProof.construct(params, instance, witness)
    assert proof.verify(params, instance)

    proof2 = WithdrawalReqProof.from_bytes(proof.to_bytes())
    assert proof2.verify(params, instance)

    # A proof for another public key fails
    other, _ = _withdrawal_statement(params)
    instance.pk_user = other.pk_user
    assert not proof.verify(params, instance)

def test_withdrawal_proof_io():
    with pytest.raises(DeserializationError):
        WithdrawalReqProof.from_bytes(encode([b"\x00" * 32]))

def _spend_statement(params, k):
    grp = params.grp
    g1, g2, gamma0 = grp.g1, grp.g2, grp.gammas[0]
    o = grp.order()
    vk = SecretKeyAuth(3, [5, 7, 11]).verification_key(params)
    beta = vk.beta_g2

    sk, v, t, r, r_e, o_c = grp.n_random_scalars(6)
    lk = list(range(1, k + 1))
    o_a, r_k = grp.n_random_scalars(k), grp.n_random_scalars(k)
    mu = [pow(v + l + 1, -1, o) for l in lk]
    o_mu = [(-(o_a[i] + o_c) * mu[i]) % o for i in range(k)]
    rr = grp.n_random_scalars(k)

    instance = SpendInstance(
        kappa=g2 * r + vk.alpha + beta[0] * sk + beta[1] * v + beta[2] * t,
        cc=g1 * o_c + gamma0 * v,
        aa=[g1 * o_a[i] + gamma0 * lk[i] for i in range(k)],
        ss=[grp.delta * m for m in mu],
        tt=[g1 * (sk + rr[i] * mu[i]) for i in range(k)],
        kappa_k=[g2 * r_k[i] + vk.alpha + beta[0] * lk[i] for i in range(k)],
        kappa_e=g2 * r_e + vk.alpha + beta[0] * t)
    witness = SpendWitness([sk, v, t], r, r_e, o_c, lk, o_a, mu, o_mu, r_k)
    return vk, instance, witness, rr

def test_spend_proof():
    params = setup(4)
    vk, instance, witness, rr = _spend_statement(params, 2)
    proof = SpendProof.construct(params, instance, witness, vk, rr, b"info", 2)
    assert proof.verify(params, instance, vk, rr, b"info", 2)
    assert SpendProof.from_bytes(proof.to_bytes()) == proof

    assert not proof.verify(params, instance, vk, rr, b"other info", 2)
    assert not proof.verify(params, instance, vk, rr[::-1], b"info", 2)
    assert not proof.verify(params, instance, vk, rr, b"info", 1)

    instance.ss = instance.ss[::-1]
    assert not proof.verify(params, instance, vk, rr, b"info", 2)

def test_spend_proof_wrong_serial():
    params = setup(4)
    vk, instance, witness, rr = _spend_statement(params, 1)
    # Serial number not derived from v
    witness.mu[0] = SecretScalar(12345)
    instance.ss = [params.grp.delta * 12345]
    proof = SpendProof.construct(params, instance, witness, vk, rr, b"info", 1)
    assert not proof.verify(params, instance, vk, rr, b"info", 1)

def test_witness_wipe():
    params = setup(4)
    _, _, witness, _ = _spend_statement(params, 1)
    witness.wipe()
    assert witness.r.is_wiped()
    assert all(x.is_wiped() for x in witness.mu)
