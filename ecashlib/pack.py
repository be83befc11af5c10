"""The module provides functions to pack and unpack structures holding
ecashlib group elements and signatures, on top of msgpack.

Scalars are not msgpack integers (they do not fit in 64 bits) and are packed
as their 32 byte encoding instead.

Example:
    >>> # Define a custom class, encoder and decoder
    >>> class CustomType:
    ...     def __eq__(self, other):
    ...         return isinstance(other, CustomType)
    >>>
    >>> def enc_custom(obj):
    ...     return b''
    >>>
    >>> def dec_custom(data):
    ...     return CustomType()
    >>>
    >>> register_coders(CustomType, 10, enc_custom, dec_custom)
    >>>
    >>> # Define a structure
    >>> G = BpGroup()
    >>> custom_obj = CustomType()
    >>> test_data = [G.gen1(), G.gen2(), custom_obj]
    >>>
    >>> # Encode and decode custom structure
    >>> packed = encode(test_data)
    >>> x = decode(packed)
    >>> assert x == test_data

"""

import msgpack

from .bp import BpGroup, G1Elem, G2Elem
from .errors import DeserializationError
from .utils import Signature

import pytest

__all__ = ["encode", "decode", "register_coders"]

_G = BpGroup()

_pack_reg = {}
_unpack_reg = {}


def register_coders(cls, num, enc_func, dec_func):
    """ Register a new type for encoding and decoding.
    Take a class type, a number, an encoding and a decoding function."""

    if num in _unpack_reg or cls in _pack_reg:
        raise ValueError("Class or number already in use.")

    coders = (cls, num, enc_func, dec_func)
    _pack_reg[cls] = coders
    _unpack_reg[num] = coders


def g1_enc(obj):
    return obj.export()


def g1_dec(data):
    return G1Elem.from_bytes(data, _G)


def g2_enc(obj):
    return obj.export()


def g2_dec(data):
    return G2Elem.from_bytes(data, _G)


def sig_enc(obj):
    return obj.to_bytes()


def sig_dec(data):
    return Signature.from_bytes(data, _G)


def _init_coders():
    global _pack_reg, _unpack_reg
    _pack_reg, _unpack_reg = {}, {}
    register_coders(G1Elem, 1, g1_enc, g1_dec)
    register_coders(G2Elem, 2, g2_enc, g2_dec)
    register_coders(Signature, 3, sig_enc, sig_dec)


# Register default coders
_init_coders()


def default(obj):
    for T in _pack_reg:
        if isinstance(obj, T):
            _, num, enc, _ = _pack_reg[T]
            return msgpack.ExtType(num, enc(obj))

    raise TypeError("Unknown type: %r" % (type(obj),))


def make_encoder(out_encoder=None):
    if out_encoder is None:
        return default
    else:
        def new_encoder(obj):
            try:
                return default(obj)
            except TypeError:
                return out_encoder(obj)
        return new_encoder


def ext_hook(code, data):
    if code in _unpack_reg:
        _, _, _, dec = _unpack_reg[code]
        return dec(data)

    # Other
    return msgpack.ExtType(code, data)


def make_decoder(custom_decoder=None):
    if custom_decoder is None:
        return ext_hook
    else:
        def new_decoder(code, data):
            out = ext_hook(code, data)
            if not isinstance(out, msgpack.ExtType):
                return out
            else:
                return custom_decoder(code, data)
        return new_decoder


def encode(structure, custom_encoder=None):
    """ Encode a structure containing ecashlib objects to a binary format. May define a custom encoder for user classes. """
    encoder = make_encoder(custom_encoder)
    return msgpack.packb(structure, default=encoder, use_bin_type=True)


def decode(packed_data, custom_decoder=None):
    """ Decode a binary byte sequence into a structure containing ecashlib objects. May define a custom decoder for custom classes. """
    decoder = make_decoder(custom_decoder)
    try:
        return msgpack.unpackb(packed_data, ext_hook=decoder, raw=False)
    except (ValueError, TypeError) as e:
        raise DeserializationError("Malformed packed data: %s" % e)

# --- TESTS ---


def test_basic():
    x = [b'spam', u'egg']
    packed = msgpack.packb(x, use_bin_type=True)
    y = msgpack.unpackb(packed, raw=False)
    assert x == y


def test_points():
    G = BpGroup()
    test_data = [G.gen1(), 5 * G.gen1(), G.gen2(), G1Elem.inf(G)]
    packed = msgpack.packb(test_data, default=default, use_bin_type=True)
    x = msgpack.unpackb(packed, ext_hook=ext_hook, raw=False)
    assert x == test_data


def test_signature():
    G = BpGroup()
    sig = Signature(G.hashG1(b"h"), 3 * G.gen1())
    test_data = {"sig": sig, "tag": b"\x00" * 32, "count": 3}
    x = decode(encode(test_data))
    assert x == test_data


def test_malformed():
    G = BpGroup()
    packed = encode([G.gen1(), G.gen2()])

    with pytest.raises(DeserializationError):
        decode(packed[:-3])

    with pytest.raises(DeserializationError):
        decode(packed + b"\x01")

    bad = msgpack.packb([msgpack.ExtType(1, b"\x00" * 47)], use_bin_type=True)
    with pytest.raises(DeserializationError):
        decode(bad)


def test_enc_dec_custom():

    # Define a custom class, encoder and decoder
    class CustomClass:
        def __eq__(self, other):
            return isinstance(other, CustomClass)

    def enc_CustomClass(obj):
        if isinstance(obj, CustomClass):
            return msgpack.ExtType(11, b'')
        raise TypeError("Unknown type: %r" % (obj,))

    def dec_CustomClass(code, data):
        if code == 11:
            return CustomClass()

        return msgpack.ExtType(code, data)

    G = BpGroup()
    test_data = [G.gen1(), CustomClass()]

    packed = encode(test_data, enc_CustomClass)
    x = decode(packed, dec_CustomClass)
    assert x == test_data


def test_registry():
    class CustomType:
        def __eq__(self, other):
            return isinstance(other, CustomType)

    _init_coders()
    register_coders(CustomType, 14, lambda obj: b'', lambda data: CustomType())
    assert CustomType in _pack_reg

    with pytest.raises(ValueError):
        register_coders(CustomType, 15, None, None)

    G = BpGroup()
    test_data = [G.gen2(), CustomType()]
    assert decode(encode(test_data)) == test_data
    _init_coders()
