""" Wipeable holders for secret scalars.

Authority keys, user keys, wallet secrets and blinding openings are kept in a
``bytearray`` that is overwritten with zeros when the holder is wiped, when a
``with`` block using it exits, and when it is garbage collected.
"""

import hmac

from py_ecc.optimized_bls12_381 import curve_order

from .errors import DeserializationError, DeserializationLengthMismatchError

import pytest

SCALAR_BYTES = 32


class SecretScalar(object):
    """ A scalar modulo the group order, held in a wipeable buffer.

        Example:
            >>> with SecretScalar(42) as s:
            ...     s.value
            42
            >>> s.is_wiped()
            True
    """

    __slots__ = ["_buf", "_live"]

    def __init__(self, value):
        if isinstance(value, SecretScalar):
            value = value.value
        self._buf = bytearray((value % curve_order).to_bytes(SCALAR_BYTES, "little"))
        self._live = True

    @property
    def value(self):
        """ The scalar as an integer. """
        if not self._live:
            raise ValueError("Secret scalar has been wiped")
        return int.from_bytes(self._buf, "little")

    def wipe(self):
        """ Overwrites the backing buffer with zeros. """
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._live = False

    def is_wiped(self):
        return not self._live

    def to_bytes(self):
        """ The 32 byte little-endian encoding of the scalar. """
        if not self._live:
            raise ValueError("Secret scalar has been wiped")
        return bytes(self._buf)

    @staticmethod
    def from_bytes(sbin):
        if len(sbin) != SCALAR_BYTES:
            raise DeserializationLengthMismatchError("SecretScalar", SCALAR_BYTES, len(sbin))
        v = int.from_bytes(sbin, "little")
        if v >= curve_order:
            raise DeserializationError("Scalar is not reduced modulo the group order")
        return SecretScalar(v)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.wipe()
        return False

    def __del__(self):
        self.wipe()

    def __eq__(self, other):
        if not isinstance(other, SecretScalar):
            return False
        return hmac.compare_digest(bytes(self._buf), bytes(other._buf))

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self):
        return "SecretScalar(<redacted>)"

# ---------- TESTS -------------

def test_value():
    s = SecretScalar(7)
    assert s.value == 7
    assert SecretScalar(curve_order + 3).value == 3
    assert SecretScalar(-1).value == curve_order - 1
    assert SecretScalar(s).value == 7
    assert s == SecretScalar(7)
    assert s != SecretScalar(8)
    assert "7" not in repr(s)

def test_wipe():
    s = SecretScalar(123456789)
    buf = s._buf
    s.wipe()
    assert s.is_wiped()
    assert buf == bytearray(SCALAR_BYTES)
    with pytest.raises(ValueError):
        s.value

def test_context():
    with SecretScalar(99) as s:
        assert s.value == 99
    assert s.is_wiped()

def test_io():
    s = SecretScalar(2 ** 200 + 5)
    assert SecretScalar.from_bytes(s.to_bytes()) == s

    with pytest.raises(DeserializationLengthMismatchError):
        SecretScalar.from_bytes(b"\x01" * 31)

    with pytest.raises(DeserializationError):
        SecretScalar.from_bytes(b"\xff" * SCALAR_BYTES)
