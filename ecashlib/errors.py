""" The failures raised by ecashlib.

Every error derives from ``EcashError``; nothing is retried internally and
verification failures always reject the whole input.
"""

import pytest


class EcashError(Exception):
    """ Base class of all ecashlib failures. """


class DeserializationError(EcashError):
    """ Bytes do not decode to a valid group element, scalar or structure. """


class DeserializationLengthMismatchError(DeserializationError):
    """ A fixed size decode received the wrong number of bytes. """

    def __init__(self, type_name, expected, actual):
        self.type_name = type_name
        self.expected = expected
        self.actual = actual
        super(DeserializationLengthMismatchError, self).__init__(
            "Tried to deserialize %s with bytes of invalid length. Expected %d bytes, got %d"
            % (type_name, expected, actual))


class VerificationKeyTooShortError(EcashError):
    """ A verification key has fewer attribute slots than needed. """


class ExpirationDateError(EcashError):
    """ The spend date lies outside the validity window of the wallet. """


class ExpirationDateSignatureError(EcashError):
    """ A set of expiration date signatures failed to verify. """


class ExpirationDateSignatureValidityError(EcashError):
    """ The randomised expiration date signature of a payment is invalid. """


class CoinIndexSignatureError(EcashError):
    """ A set of coin index signatures failed to verify. """


class SpendSignaturesValidityError(EcashError):
    """ The randomised wallet signature of a payment is invalid. """


class SpendSignaturesVerificationError(EcashError):
    """ The coin index signatures of a payment are invalid. """


class SpendZKProofVerificationError(EcashError):
    """ The zero-knowledge proof of a payment was rejected. """


class SpendDuplicateSerialNumberError(EcashError):
    """ A payment discloses the same serial number twice. """


class SpendExceedsAllowanceError(EcashError):
    """ Spending would go past the ticket budget of the wallet. """

    def __init__(self, spending, remaining):
        self.spending = spending
        self.remaining = remaining
        super(SpendExceedsAllowanceError, self).__init__(
            "The amount you want to spend (%d) exceeds the remaining wallet allowance (%d)"
            % (spending, remaining))


class UnluckiestError(EcashError):
    """ The pseudorandom function denominator v + l + 1 is zero. """


class AggregationError(EcashError):
    """ Shares could not be combined. """


class KeygenError(EcashError):
    """ Invalid threshold key generation parameters. """


class WithdrawalRequestError(EcashError):
    """ A withdrawal request is malformed or its proof is invalid. """


class IssuanceVerificationError(EcashError):
    """ An unblinded partial wallet signature does not verify. """


class IdentifyError(EcashError):
    """ Two payments cannot be used to identify a double spender. """

# ---------- TESTS -------------

def test_length_mismatch():
    e = DeserializationLengthMismatchError("Wallet", 168, 3)
    assert e.expected == 168
    assert e.actual == 3
    assert "Wallet" in str(e)
    assert isinstance(e, DeserializationError)
    assert isinstance(e, EcashError)

def test_allowance():
    with pytest.raises(EcashError) as excinfo:
        raise SpendExceedsAllowanceError(5, 2)
    assert excinfo.value.spending == 5
    assert excinfo.value.remaining == 2
