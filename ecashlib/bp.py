""" The BLS12-381 pairing group triple used by ecashlib.

Points are held in the projective coordinates of the optimised py_ecc
implementation and exported in the compressed ZCash encoding: 48 bytes for
an element of G1 and 96 bytes for an element of G2. Scalars are plain
python integers modulo the group order.
"""

from hashlib import sha256
from secrets import randbelow

from py_ecc.optimized_bls12_381 import (FQ12, G1, G2, Z1, Z2, add, b, b2, curve_order,
                                        eq, final_exponentiate, is_inf, is_on_curve,
                                        multiply, neg, pairing)
from py_ecc.bls.hash_to_curve import hash_to_G1
from py_ecc.bls.point_compression import (compress_G1, compress_G2, decompress_G1,
                                          decompress_G2)

from .errors import DeserializationError, DeserializationLengthMismatchError

import pytest

G1_BYTES = 48
G2_BYTES = 96

DST_G1 = b"ECASHLIB-V01-CS02-with-BLS12381G1_XMD:SHA-256_SSWU_RO_"


class BpGroup(object):

    def __init__(self):
        """Build the BLS12-381 group triple."""
        self.g1 = G1Elem(self, G1)
        self.g2 = G2Elem(self, G2)

    def order(self):
        """Returns the (prime) order of G1, G2 and GT.

        Example:
            >>> G = BpGroup()
            >>> G.order() == 0x73eda753299d7d483339d80809a1d80553bda402fffe5bfeffffffff00000001
            True

        """
        return curve_order

    def gen1(self):
        """ Returns the generator for G1. """
        return self.g1

    def gen2(self):
        """ Returns the generator for G2. """
        return self.g2

    def random(self):
        """ Returns a uniformly random non-zero scalar. """
        return 1 + randbelow(curve_order - 1)

    def hashG1(self, sbin, dst=DST_G1):
        """ Hashes a byte string to a point of G1 (hash_to_curve, SSWU). """
        return G1Elem(self, hash_to_G1(sbin, dst, sha256))

    def pair(self, g1, g2):
        """ The pairing operation e(G1, G2) -> GT.

            Example:
                >>> G = BpGroup()
                >>> g1, g2 = G.gen1(), G.gen2()
                >>> gt = G.pair(g1, g2)
                >>> gt6 = G.pair(g1.mul(2), g2.mul(3))
                >>> gt.exp(6).eq( gt6 )
                True

        """
        return GTElem(self, pairing(g2.pt, g1.pt))

    def pair_product(self, pairs):
        """ Returns the product of e(a, b) over all (a, b) in pairs, sharing a
        single final exponentiation across the Miller loops. """
        acc = FQ12.one()
        for (a, b_) in pairs:
            acc = acc * pairing(b_.pt, a.pt, final_exponentiate=False)
        return GTElem(self, final_exponentiate(acc))

    def sum(self, elems):
        """ Sums a non-empty list of elements of the same group. """
        result = elems[0]
        for e in elems[1:]:
            result = result + e
        return result

    def wsum(self, weights, elems):
        """ Sums a number of elements each multiplied by a scalar in weights. """
        if len(weights) != len(elems) or not elems:
            raise ValueError("Expected as many weights as elements, and at least one of each")
        return self.sum([w * e for w, e in zip(weights, elems)])

    def __eq__(self, other):
        return isinstance(other, BpGroup)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash("BLS12-381")

    def __repr__(self):
        return "BpGroup(BLS12-381)"


class _PointElem(object):
    """ Common arithmetic of the elements of G1 and G2. """

    __slots__ = ["group", "pt"]

    _zero = None
    _curve_b = None
    _size = 0

    def __init__(self, group, pt=None):
        self.group = group
        self.pt = self._zero if pt is None else pt

    def __copy__(self):
        return self.__class__(self.group, self.pt)

    def add(self, other):
        """ Returns the sum of two points. """
        return self.__add__(other)

    def __add__(self, other):
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.__class__(self.group, add(self.pt, other.pt))

    def __sub__(self, other):
        return self + (-other)

    def double(self):
        """ Returns the double of the point. """
        return self + self

    def neg(self):
        """ Returns the inverse point. """
        return self.__neg__()

    def __neg__(self):
        return self.__class__(self.group, neg(self.pt))

    def mul(self, scalar):
        """ Multiplies the point with a scalar. """
        return self.__mul__(scalar)

    def __mul__(self, scalar):
        if isinstance(scalar, bool) or not isinstance(scalar, int):
            return NotImplemented
        return self.__class__(self.group, multiply(self.pt, scalar % curve_order))

    def __rmul__(self, scalar):
        return self.__mul__(scalar)

    def eq(self, other):
        """ Returns True if points are equal. """
        return self.__eq__(other)

    def __eq__(self, other):
        if not isinstance(other, self.__class__):
            return False
        return eq(self.pt, other.pt)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(self.export())

    def isinf(self):
        return is_inf(self.pt)

    def in_subgroup(self):
        """ Returns True if the point lies in the prime order subgroup. """
        return is_on_curve(self.pt, self._curve_b) and is_inf(multiply(self.pt, curve_order))

    def __str__(self):
        return self.export().hex()

    def __repr__(self):
        return "%s(%s)" % (self.__class__.__name__, self.__str__())


class G1Elem(_PointElem):

    _zero = Z1
    _curve_b = b
    _size = G1_BYTES

    @staticmethod
    def inf(group):
        """ Returns the element at infinity for G1 """
        return G1Elem(group, Z1)

    def export(self):
        """ Export a point to its 48 byte compressed representation.

            Example:
                >>> len(BpGroup().gen1().export())
                48

        """
        return compress_G1(self.pt).to_bytes(G1_BYTES, "big")

    @staticmethod
    def from_bytes(sbin, group):
        """ Import a G1 point from bytes.

            Export:
                >>> G = BpGroup()
                >>> g1 = G.gen1()
                >>> buf = g1.export()
                >>> g1p = G1Elem.from_bytes(buf, G)
                >>> g1.eq(g1p)
                True

        """
        if len(sbin) != G1_BYTES:
            raise DeserializationLengthMismatchError("G1Elem", G1_BYTES, len(sbin))
        try:
            pt = decompress_G1(int.from_bytes(sbin, "big"))
        except ValueError as e:
            raise DeserializationError("Invalid G1 point encoding: %s" % e)

        newpt = G1Elem(group, pt)
        if not newpt.in_subgroup():
            raise DeserializationError("G1 point is not in the prime order subgroup")
        return newpt


class G2Elem(_PointElem):

    _zero = Z2
    _curve_b = b2
    _size = G2_BYTES

    @staticmethod
    def inf(group):
        """ Returns the element at infinity for G2. """
        return G2Elem(group, Z2)

    def export(self):
        """ Export a point to its 96 byte compressed representation. """
        z1, z2 = compress_G2(self.pt)
        return z1.to_bytes(G1_BYTES, "big") + z2.to_bytes(G1_BYTES, "big")

    @staticmethod
    def from_bytes(sbin, group):
        """ Import a G2 point from bytes.

            Export:
                >>> G = BpGroup()
                >>> g2 = G.gen2()
                >>> buf = g2.export()
                >>> g2p = G2Elem.from_bytes(buf, G)
                >>> g2.eq(g2p)
                True

        """
        if len(sbin) != G2_BYTES:
            raise DeserializationLengthMismatchError("G2Elem", G2_BYTES, len(sbin))
        z1 = int.from_bytes(sbin[:G1_BYTES], "big")
        z2 = int.from_bytes(sbin[G1_BYTES:], "big")
        try:
            pt = decompress_G2((z1, z2))
        except ValueError as e:
            raise DeserializationError("Invalid G2 point encoding: %s" % e)

        newpt = G2Elem(group, pt)
        if not newpt.in_subgroup():
            raise DeserializationError("G2 point is not in the prime order subgroup")
        return newpt


class GTElem(object):

    __slots__ = ["group", "elem"]

    @staticmethod
    def one(group):
        """ Returns the unit of GT. """
        return GTElem(group, FQ12.one())

    def __init__(self, group, elem):
        self.group = group
        self.elem = elem

    def isone(self):
        return self.elem == FQ12.one()

    def mul(self, other):
        """ Returns the product of two elements.

            Example:
                >>> G = BpGroup()
                >>> gt = G.pair(G.gen1(), G.gen2())
                >>> gt.mul(gt.inv()).isone()
                True
        """
        return GTElem(self.group, self.elem * other.elem)

    def __mul__(self, other):
        return self.mul(other)

    def inv(self):
        """ Returns the inverse element. """
        return GTElem(self.group, self.elem.inv())

    def exp(self, scalar):
        """ Exponentiates the element with a scalar. """
        return GTElem(self.group, self.elem ** (scalar % curve_order))

    def eq(self, other):
        """ Returns True if elements are equal. """
        return self.__eq__(other)

    def __eq__(self, other):
        return isinstance(other, GTElem) and self.elem == other.elem

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(int(c) for c in self.elem.coeffs))

# ---------- TESTS -------------

def test_group():
    G = BpGroup()
    assert G == BpGroup()
    assert G.gen1().in_subgroup()
    assert G.gen2().in_subgroup()
    assert (G.order() * G.gen1()).isinf()
    assert 0 < G.random() < G.order()

    g = G.gen1()
    assert G.wsum([2, 3], [g, g]) == 5 * g
    with pytest.raises(ValueError):
        G.wsum([2, 3], [g])
    with pytest.raises(ValueError):
        G.wsum([], [])

def test_g1_arithmetic():
    G = BpGroup()
    g = G.gen1()
    assert g + g == 2 * g
    assert g + g == g.double()
    assert g * 3 == 3 * g
    assert g - g == G1Elem.inf(G)
    assert (g + (-g)).isinf()
    assert g != 2 * g
    assert (G.order() - 1) * g == -g
    assert G.sum([g, g, g]) == 3 * g
    assert G.wsum([2, 5], [g, g]) == 7 * g

    d = {}
    d[2 * g] = 2
    assert d[g + g] == 2

def test_g2_arithmetic():
    G = BpGroup()
    g = G.gen2()
    assert g + g == 2 * g
    assert 5 * g - 2 * g == 3 * g
    assert (g - g).isinf()
    assert not g == G.gen1()

def test_g1_io():
    G = BpGroup()
    g = 12345 * G.gen1()
    buf = g.export()
    assert len(buf) == G1_BYTES
    assert G1Elem.from_bytes(buf, G) == g

    inf = G1Elem.inf(G)
    assert G1Elem.from_bytes(inf.export(), G).isinf()

    with pytest.raises(DeserializationLengthMismatchError):
        G1Elem.from_bytes(buf[:-1], G)

    with pytest.raises(DeserializationError):
        G1Elem.from_bytes(b"\xff" * G1_BYTES, G)

def test_g2_io():
    G = BpGroup()
    g = 777 * G.gen2()
    buf = g.export()
    assert len(buf) == G2_BYTES
    assert G2Elem.from_bytes(buf, G) == g

    with pytest.raises(DeserializationLengthMismatchError):
        G2Elem.from_bytes(buf + b"\x00", G)

def test_hash_g1():
    G = BpGroup()
    h1 = G.hashG1(b"Hello")
    assert h1 == G.hashG1(b"Hello")
    assert h1 != G.hashG1(b"Hello2")
    assert h1.in_subgroup()

def test_pairing():
    G = BpGroup()
    g1, g2 = G.gen1(), G.gen2()
    gt = G.pair(g1, g2)
    assert not gt.isone()
    assert gt.exp(6) == G.pair(2 * g1, 3 * g2)
    assert G.pair_product([(5 * g1, g2), (-g1, 5 * g2)]).isone()
