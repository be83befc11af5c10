""" Blind issuance of wallets.

The user commits to its secret key and to a fresh wallet secret ``v`` and
sends the commitments with a proof of knowledge of their openings to the
authorities. Each authority signs the commitments blindly together with the
expiration date; the user unblinds every partial signature into a
``PartialWallet`` and aggregates a quorum of them into a ``Wallet``.
"""

import logging

from .aggregation import SignatureShare, aggregate_signature_shares, aggregate_verification_keys
from .bp import G1Elem
from .errors import (AggregationError, DeserializationError, IssuanceVerificationError,
                     WithdrawalRequestError)
from .keygen import generate_keypair_user, ttp_keygen
from .pack import decode, encode
from .params import setup
from .proofs import WithdrawalReqInstance, WithdrawalReqProof, WithdrawalReqWitness
from .secret import SecretScalar
from .utils import Signature, day_timestamp, scalar_to_bytes
from .wallet import PartialWallet, Wallet

import pytest

logger = logging.getLogger(__name__)


class WithdrawalRequest(object):

    def __init__(self, joined_commitment_hash, joined_commitment,
                 private_attributes_commitments, zk_proof):
        self.joined_commitment_hash = joined_commitment_hash
        self.joined_commitment = joined_commitment
        self.private_attributes_commitments = private_attributes_commitments
        self.zk_proof = zk_proof

    def to_bytes(self):
        return encode([self.joined_commitment_hash, self.joined_commitment,
                       self.private_attributes_commitments, self.zk_proof.to_bytes()])

    @staticmethod
    def from_bytes(sbin):
        data = decode(sbin)
        if not isinstance(data, list) or len(data) != 4:
            raise DeserializationError("Failed to deserialize WithdrawalRequest")
        h, com, pc, proof = data
        if not (isinstance(h, G1Elem) and isinstance(com, G1Elem) and isinstance(pc, list)
                and all(isinstance(x, G1Elem) for x in pc) and isinstance(proof, bytes)):
            raise DeserializationError("Failed to deserialize WithdrawalRequest")
        return WithdrawalRequest(h, com, pc, WithdrawalReqProof.from_bytes(proof))


class RequestInfo(object):
    """ The openings a user keeps to unblind the issued signatures. """

    def __init__(self, joined_commitment_hash, joined_commitment_opening,
                 private_attributes_openings, wallet_secret, expiration_date):
        self.joined_commitment_hash = joined_commitment_hash
        self.joined_commitment_opening = SecretScalar(joined_commitment_opening)
        self.private_attributes_openings = [SecretScalar(o) for o in private_attributes_openings]
        self.wallet_secret = SecretScalar(wallet_secret)
        self.expiration_date = expiration_date

    def wipe(self):
        self.joined_commitment_opening.wipe()
        self.wallet_secret.wipe()
        for o in self.private_attributes_openings:
            o.wipe()


class BlindedSignature(object):

    def __init__(self, h, c):
        self.h = h
        self.c = c

    def to_bytes(self):
        return Signature(self.h, self.c).to_bytes()

    @staticmethod
    def from_bytes(sbin, G=None):
        sig = Signature.from_bytes(sbin, G)
        return BlindedSignature(sig.h, sig.s)


def joined_commitment_hash(params, joined_commitment, expiration_date):
    return params.grp.hash_g1(joined_commitment.export() + scalar_to_bytes(expiration_date))


def withdrawal_request(params, sk_user, expiration_date):
    """ Builds the request for a wallet expiring on expiration_date. Returns
    the request to send to the authorities and the information to keep. """
    grp = params.grp
    g1 = grp.g1
    exp = day_timestamp(expiration_date)

    sk = sk_user.sk.value
    v = grp.random_scalar()
    o = grp.random_scalar()
    com = g1 * o + grp.gammas[0] * sk + grp.gammas[1] * v
    h = joined_commitment_hash(params, com, exp)

    attributes = [sk, v]
    openings = grp.n_random_scalars(len(attributes))
    pc = [g1 * o_i + h * m_i for o_i, m_i in zip(openings, attributes)]

    instance = WithdrawalReqInstance(com, h, pc, sk_user.public_key(params))
    witness = WithdrawalReqWitness(attributes, o, openings)
    try:
        zk_proof = WithdrawalReqProof.construct(params, instance, witness)
    finally:
        witness.wipe()

    logger.debug("Built withdrawal request for expiration date %d", exp)
    return (WithdrawalRequest(h, com, pc, zk_proof),
            RequestInfo(h, o, openings, v, exp))


def request_verify(params, request, pk_user, expiration_date):
    """ Checks a withdrawal request on the authority side. """
    exp = day_timestamp(expiration_date)
    h = joined_commitment_hash(params, request.joined_commitment, exp)
    if h != request.joined_commitment_hash:
        raise WithdrawalRequestError("The joined commitment hash does not match")
    if len(request.private_attributes_commitments) != 2:
        raise WithdrawalRequestError("Expected 2 private attribute commitments, got %d"
                                     % len(request.private_attributes_commitments))

    instance = WithdrawalReqInstance(request.joined_commitment, h,
                                     request.private_attributes_commitments, pk_user)
    if not request.zk_proof.verify(params, instance):
        raise WithdrawalRequestError("The withdrawal request proof is invalid")
    return True


def issue(params, sk_auth, pk_user, request, expiration_date):
    """ Blindly signs a verified withdrawal request. """
    try:
        request_verify(params, request, pk_user, expiration_date)
    except WithdrawalRequestError as e:
        logger.warning("Rejecting withdrawal request: %s", e)
        raise

    exp = day_timestamp(expiration_date)
    h = request.joined_commitment_hash
    y0, y1, y2 = [y.value for y in sk_auth.ys[:3]]
    pc0, pc1 = request.private_attributes_commitments
    c = h * (sk_auth.x.value + y2 * exp) + pc0 * y0 + pc1 * y1
    return BlindedSignature(h, c)


def issue_verify(params, vk_auth, sk_user, blinded, req_info, signer_index):
    """ Unblinds and verifies the signature of the authority signer_index. """
    if blinded.h != req_info.joined_commitment_hash:
        raise IssuanceVerificationError("The blinded signature is on the wrong hash")

    vk_auth.check_size()
    openings = [o.value for o in req_info.private_attributes_openings]
    s = blinded.c - (vk_auth.beta_g1[0] * openings[0] + vk_auth.beta_g1[1] * openings[1])
    sig = Signature(blinded.h, s)

    v = req_info.wallet_secret.value
    attributes = [sk_user.sk.value, v, req_info.expiration_date]
    if not sig.verify(params.grp.G, vk_auth, attributes):
        raise IssuanceVerificationError(
            "The signature of authority %d does not verify" % signer_index)
    return PartialWallet(sig, v, req_info.expiration_date, signer_index)


def aggregate_wallets(params, vk, sk_user, wallets, req_info, verification_keys):
    """ Aggregates the partial wallets of a quorum of authorities into a
    Wallet with no tickets spent. verification_keys[i] is the key of the
    authority that issued wallets[i]. """
    if not wallets:
        raise AggregationError("Tried to aggregate an empty set of partial wallets")
    if len(verification_keys) != len(wallets):
        raise AggregationError("Got %d partial wallets but %d verification keys"
                               % (len(wallets), len(verification_keys)))

    v = req_info.wallet_secret.value
    exp = req_info.expiration_date
    for w in wallets:
        if w.v.value != v or w.expiration_date != exp:
            raise AggregationError("Partial wallet %d is not for this request" % w.idx)

    shares = [SignatureShare(w.idx, key, w.sig) for w, key in zip(wallets, verification_keys)]
    sig = aggregate_signature_shares(params, vk, [sk_user.sk.value, v, exp], shares)
    return Wallet(sig, v, exp, 0)

# ---------- TESTS -------------

EXP = 1700000000

@pytest.fixture(scope="module")
def issuance():
    params = setup(3, validity_period=2)
    keys = ttp_keygen(params, 2, 3)
    vk = aggregate_verification_keys([k.verification_key for k in keys], [1, 2, 3])
    user = generate_keypair_user(params)
    return params, keys, vk, user

def test_request(issuance):
    params, keys, vk, user = issuance
    request, info = withdrawal_request(params, user.secret_key, EXP)
    assert info.expiration_date == day_timestamp(EXP)
    assert request_verify(params, request, user.public_key, EXP)

    request2 = WithdrawalRequest.from_bytes(request.to_bytes())
    assert request_verify(params, request2, user.public_key, EXP)

    with pytest.raises(WithdrawalRequestError):
        request_verify(params, request, user.public_key, EXP + 86400)

    other = generate_keypair_user(params)
    with pytest.raises(WithdrawalRequestError):
        issue(params, keys[0].secret_key, other.public_key, request, EXP)

def test_issue(issuance):
    params, keys, vk, user = issuance
    request, info = withdrawal_request(params, user.secret_key, EXP)

    partials = []
    for kp in keys:
        blinded = issue(params, kp.secret_key, user.public_key, request, EXP)
        blinded = BlindedSignature.from_bytes(blinded.to_bytes(), params.grp.G)
        partials.append(issue_verify(params, kp.verification_key, user.secret_key, blinded,
                                     info, kp.index))
    assert [w.idx for w in partials] == [1, 2, 3]

    vks = [kp.verification_key for kp in keys]
    wallet = aggregate_wallets(params, vk, user.secret_key, partials[:2], info, vks[:2])
    assert wallet.tickets_spent == 0
    assert wallet.expiration_date == day_timestamp(EXP)
    wallet2 = aggregate_wallets(params, vk, user.secret_key, partials[1:], info, vks[1:])
    assert wallet.sig == wallet2.sig

    with pytest.raises(AggregationError):
        aggregate_wallets(params, vk, user.secret_key, [partials[0], partials[0]], info,
                          [vks[0], vks[0]])

    with pytest.raises(AggregationError):
        aggregate_wallets(params, vk, user.secret_key, [], info, [])

    # Unblinding with the wrong key
    blinded = issue(params, keys[0].secret_key, user.public_key, request, EXP)
    with pytest.raises(IssuanceVerificationError):
        issue_verify(params, keys[1].verification_key, user.secret_key, blinded, info, 2)

def test_request_info_wipe(issuance):
    params, keys, vk, user = issuance
    _, info = withdrawal_request(params, user.secret_key, EXP)
    info.wipe()
    assert info.wallet_secret.is_wiped()
