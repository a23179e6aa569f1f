import numpy as np
import pytest

from hcs200 import BitBuffer


def test_from_codes_length_prefix():
    buffer = BitBuffer.from_codes(["{12}fff", "{66}123456789abcde0f40"])
    assert buffer.num_rows == 2
    assert buffer.bits_per_row(0) == 12
    assert buffer.row(0) == b"\xff\xf0"
    assert buffer.bits_per_row(1) == 66
    assert buffer.row(1) == bytes.fromhex("123456789abcde0f40")


def test_from_codes_without_prefix():
    buffer = BitBuffer.from_codes(["a5c"])
    assert buffer.bits_per_row(0) == 12
    assert buffer.row(0) == b"\xa5\xc0"


def test_from_codes_masks_bits_past_length():
    buffer = BitBuffer.from_codes(["{66}123456789abcde0fff"])
    assert buffer.row(0)[-1] == 0xC0


@pytest.mark.parametrize("code", ["{12}ff", "{x}ff", "zz", "{12}fff extra"])
def test_from_codes_rejects_malformed(code):
    with pytest.raises(ValueError):
        BitBuffer.from_codes([code])


def test_from_bits_packs_msb_first():
    buffer = BitBuffer.from_bits([[1, 0, 1, 0, 0, 1, 0, 1, 1, 1]])
    assert buffer.bits_per_row(0) == 10
    assert buffer.row(0) == b"\xa5\xc0"


@pytest.mark.parametrize("row", [[0, 1, 2], [0, -1], [1, 0.5]])
def test_from_bits_rejects_non_binary(row):
    with pytest.raises(ValueError):
        BitBuffer.from_bits([row])


def test_row_bits():
    buffer = BitBuffer.from_codes(["{10}a5c"])
    np.testing.assert_array_equal(buffer.row_bits(0), [1, 0, 1, 0, 0, 1, 0, 1, 1, 1])


def test_short_row_data_rejected():
    with pytest.raises(ValueError):
        BitBuffer([(b"\xff", 12)])


def test_rows_are_copied():
    data = bytearray(b"\xff\xf0")
    buffer = BitBuffer([(data, 12)])
    data[0] = 0
    assert buffer.row(0) == b"\xff\xf0"


def test_repr():
    assert repr(BitBuffer.from_codes(["{12}fff"])) == "BitBuffer([{12}fff0])"
