import pytest

import udtc


SAMPLES = [
    "",
    "plain ascii",
    "héllo wörld",
    "€ and ₿",
    "𝄞 music 🎼",
    "mixed: aé中\U0001F600\x00end",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_decode_matches_code_points(text):
    assert udtc.decode(text.encode("utf-8")) == [ord(c) for c in text]


@pytest.mark.parametrize("text", SAMPLES)
def test_encode_decode_restores_bytes(text):
    data = text.encode("utf-8")
    assert udtc.encode(udtc.decode(data)) == data


def test_encode_length_thresholds():
    assert udtc.encode([0x7F]) == b"\x7f"
    assert udtc.encode([0x80]) == b"\xc2\x80"
    assert udtc.encode([0x7FF]) == b"\xdf\xbf"
    assert udtc.encode([0x800]) == b"\xe0\xa0\x80"
    assert udtc.encode([0xFFFF]) == b"\xef\xbf\xbf"
    assert udtc.encode([0x10000]) == b"\xf0\x90\x80\x80"
    assert udtc.encode([0x10FFFF]) == b"\xf4\x8f\xbf\xbf"


def test_encode_nul():
    assert udtc.encode([0, 65, 0]) == b"\x00A\x00"


def test_decode_boundaries():
    data = b"\xed\x9f\xbf\xee\x80\x80\xf4\x8f\xbf\xbf"
    assert udtc.decode(data) == [0xD7FF, 0xE000, 0x10FFFF]


@pytest.mark.parametrize("data", [
    b"\xe2\x82",
    b"abc\xf0\x9f\x98",
    b"\xc3",
])
def test_decode_truncated_tail(data):
    with pytest.raises(udtc.InvalidEncoding) as exc:
        udtc.decode(data)
    assert exc.value.truncated
    assert "last sequence" in str(exc.value)


def test_truncated_offset_points_at_sequence_start():
    with pytest.raises(udtc.InvalidEncoding) as exc:
        udtc.decode(b"abc\xe2\x82")
    assert exc.value.offset == 3


@pytest.mark.parametrize("data, reason", [
    (b"\xc0\xaf", "overlong encoding"),
    (b"\xc1\x81", "overlong encoding"),
    (b"\xe0\x80\xaf", "overlong encoding"),
    (b"\xf0\x80\x80\xaf", "overlong encoding"),
    (b"\xed\xa0\x80", "surrogate half"),
    (b"\xed\xbf\xbf", "surrogate half"),
    (b"\xf4\x90\x80\x80", "code point above U+10FFFF"),
    (b"\xf5\x80\x80\x80", "invalid lead byte"),
    (b"\xff", "invalid lead byte"),
    (b"\x80", "unexpected continuation byte"),
    (b"a\xbfb", "unexpected continuation byte"),
    (b"\xc3A", "missing continuation byte"),
    (b"\xe2\x82A", "missing continuation byte"),
])
def test_decode_rejects(data, reason):
    with pytest.raises(udtc.InvalidEncoding) as exc:
        udtc.decode(data)
    assert not exc.value.truncated
    assert exc.value.reason == reason


def test_reject_is_reported_before_end_of_stream():
    # the bad byte comes first, so this is a reject and not a truncation
    with pytest.raises(udtc.InvalidEncoding) as exc:
        udtc.decode(b"ok\xc0\xafmore\xe2")
    assert exc.value.offset == 2
    assert not exc.value.truncated


@pytest.mark.parametrize("value", [0x110000, 0xD800, 0xDFFF, -1, 0x7FFFFFFF])
def test_encode_rejects_bad_code_points(value):
    with pytest.raises(udtc.InvalidCodepoint) as exc:
        udtc.encode([65, value])
    assert exc.value.index == 1
    assert exc.value.codepoint == value


def test_encode_rejects_non_integers():
    with pytest.raises(udtc.InvalidCodepoint):
        udtc.encode(["a"])


def test_errors_share_a_base_class():
    assert issubclass(udtc.InvalidEncoding, udtc.UdtcError)
    assert issubclass(udtc.InvalidCodepoint, udtc.UdtcError)
    assert issubclass(udtc.InvalidKey, udtc.UdtcError)
