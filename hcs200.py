#!/usr/bin/env python3
"""
Microchip HCS200/HCS300 KeeLoq Code Hopping Packet Decoder

Supports:
- Microchip HCS200/HCS300 based remotes (OOK and FSK)
- Genie / Overhead Door Intellicode remotes (same code word, 2x baud)

66 bits transmitted, LSB first:

    0-31   Encrypted portion (rolling code, passed through opaque)
    32-59  Serial number
    60-63  Button status (S3, S0, S1, S2)
    64     Battery low
    65     Repeat

The demodulator delivers two rows: the 12-bit preamble marker and the
66-bit code word, both packed MSB first per byte.

- Datasheet HCS200: http://ww1.microchip.com/downloads/en/devicedoc/40138c.pdf
- Datasheet HCS300: http://ww1.microchip.com/downloads/en/devicedoc/21137g.pdf
"""

import re
import sys
import json
import logging
import argparse
import numpy as np
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from enum import Enum


logger = logging.getLogger(__name__)

MODEL = "Microchip-HCS200"

PREAMBLE_BITS = 12
CODE_WORD_BITS = 66

OUTPUT_FIELDS = (
    "model",
    "id",
    "battery_ok",
    "button",
    "learn",
    "repeat",
    "encrypted",
)

# Byte-wise bit reversal table, entry n holds n with its 8 bits mirrored
_REVERSE8 = np.packbits(
    np.unpackbits(np.arange(256, dtype=np.uint8)[:, np.newaxis], axis=1)[:, ::-1],
    axis=1,
).ravel()


def reverse_bits(byte: int) -> int:
    """Mirror the 8 bits of a byte (bit 7 <-> bit 0)"""
    if not isinstance(byte, (int, np.integer)) or not 0 <= byte <= 0xFF:
        raise ValueError(f"Not a byte value: {byte}")
    return int(_REVERSE8[byte])


def reorder_button(raw: int) -> int:
    """
    Reorder the raw button nibble into natural S3 S2 S1 S0 order.

    The encoder sends the button lines as S3, S0, S1, S2, so the last
    nibble of the code word carries S3 in bit 3, S0 in bit 2, S1 in
    bit 1 and S2 in bit 0.
    """
    return (raw & 0x08) | ((raw & 0x01) << 2) | (raw & 0x02) | ((raw & 0x04) >> 2)


class Modulation(Enum):
    """Pulse width modulation carriers"""
    OOK_PWM = "OOK_PWM"
    FSK_PWM = "FSK_PWM"


class Reason(Enum):
    """Packet rejection reasons, valued with rtl_433 style return codes"""
    PREAMBLE_MISMATCH = -1         # DECODE_ABORT_EARLY
    WRONG_LENGTH = -2              # DECODE_ABORT_LENGTH
    ALL_ONES_SANITY_FAILURE = -4   # DECODE_FAIL_SANITY

    @property
    def description(self) -> str:
        return {
            Reason.PREAMBLE_MISMATCH: "abort early, preamble not found",
            Reason.WRONG_LENGTH: "abort, length mismatch",
            Reason.ALL_ONES_SANITY_FAILURE: "reject, failed sanity (data all 0xff)",
        }[self]


@dataclass(frozen=True)
class Profile:
    """Demodulator timing parameters (all widths in microseconds)"""
    name: str
    description: str
    modulation: Modulation
    short_width: int
    long_width: int
    gap_limit: int
    reset_limit: int
    tolerance: int = 0   # 0 = split difference of short and long

    @property
    def threshold(self) -> float:
        """Short/long decision point used when no tolerance is set"""
        return (self.short_width + self.long_width) / 2

    def flex_spec(self) -> str:
        """rtl_433 flex decoder spec for this profile"""
        spec = (f"n={self.name},m={self.modulation.value},"
                f"s={self.short_width},l={self.long_width},"
                f"r={self.reset_limit},g={self.gap_limit}")
        if self.tolerance:
            spec += f",t={self.tolerance}"
        return spec


class ProfileDatabase:
    """
    Known transmitter families sharing the HCS200 code word.

    TE (basic pulse element) is nominally 400us on the HCS200/HCS300 and
    drifts with temperature and supply voltage: -30% to +55% on the HCS200,
    -35% to +65% on the HCS300. A logic 0 / long pulse is 2x TE high then
    1x TE low, a logic 1 / short pulse is 1x TE high then 2x TE low.

    The preamble is 23x TE at 50% duty cycle followed by a 10x TE header
    gap, then 66 code words and a 39x TE guard time. Two packets are sent
    with a 17500us gap.

    gap must be shorter than 10x TE at the shortest value: 2600us
    gap must be longer than 2x TE at the longest value: 1320us
    reset must be longer than 10x TE at the longest value: 6600us
    reset must be shorter than 39x TE at the shortest value: 10140us

    A long pulse needs 920+/-400us but a short one only 460+/-200us, so one
    symmetric tolerance cannot serve both. Tolerance is left at 0 and the
    demodulator splits at the midpoint of short and long instead.

    Genie / Overhead Door Intellicode devices run at 2x baud, TE ~200us.
    """

    KNOWN_PROFILES = OrderedDict([
        ("hcs200", Profile(
            name="hcs200",
            description="Microchip HCS200/HCS300 KeeLoq Hopping Encoder based remotes",
            modulation=Modulation.OOK_PWM,
            short_width=393,
            long_width=787,
            gap_limit=1500,
            reset_limit=9000,
        )),
        ("hcs200_fsk", Profile(
            name="hcs200_fsk",
            description="Microchip HCS200/HCS300 KeeLoq Hopping Encoder based remotes (FSK)",
            modulation=Modulation.FSK_PWM,
            short_width=393,
            long_width=787,
            gap_limit=1500,
            reset_limit=9000,
        )),
        ("intellicode", Profile(
            name="intellicode",
            description="Genie / Overhead Door Intellicode KeeLoq Hopping Encoder based remotes",
            modulation=Modulation.OOK_PWM,
            short_width=197,
            long_width=393,
            gap_limit=750,
            reset_limit=4500,
        )),
    ])

    @staticmethod
    def get_profile(name: str) -> Profile:
        """Look up a profile by name"""
        try:
            return ProfileDatabase.KNOWN_PROFILES[name]
        except KeyError:
            valid = ", ".join(ProfileDatabase.KNOWN_PROFILES)
            raise KeyError(f"Unknown profile '{name}' (known: {valid})") from None


PROFILES = ProfileDatabase.KNOWN_PROFILES
get_profile = ProfileDatabase.get_profile


_CODE_RE = re.compile(r"^(?:\{(\d+)\})?([0-9a-fA-F]*)$")


class BitBuffer:
    """
    Demodulated rows of bits, packed MSB first per byte.

    Rows are held as immutable bytes; unused trailing bits of a row's last
    byte are zero.
    """

    def __init__(self, rows: Iterable[Tuple[bytes, int]]):
        self._rows: List[Tuple[bytes, int]] = []
        for data, bits in rows:
            if bits < 0:
                raise ValueError(f"Negative row length: {bits}")
            nbytes = (bits + 7) // 8
            if len(data) < nbytes:
                raise ValueError(f"Row of {bits} bits needs {nbytes} bytes, got {len(data)}")
            packed = bytearray(data[:nbytes])
            if bits % 8:
                packed[-1] &= (0xFF << (8 - bits % 8)) & 0xFF
            self._rows.append((bytes(packed), bits))

    @classmethod
    def from_bits(cls, rows: Iterable[Sequence[int]]) -> "BitBuffer":
        """Build from rows of 0/1 values"""
        packed = []
        for row in rows:
            bits = np.asarray(row).ravel()
            if not np.isin(bits, (0, 1)).all():
                raise ValueError("Bits must be 0 or 1")
            bits = bits.astype(np.uint8)
            packed.append((np.packbits(bits).tobytes(), len(bits)))
        return cls(packed)

    @classmethod
    def from_codes(cls, codes: Iterable[str]) -> "BitBuffer":
        """
        Build from rtl_433 style row codes, e.g. "{12}fff".

        A code without a "{N}" length prefix spans all of its hex digits.
        """
        rows = []
        for code in codes:
            match = _CODE_RE.match(code.strip())
            if not match:
                raise ValueError(f"Malformed row code: {code!r}")
            length, digits = match.groups()
            available = len(digits) * 4
            bits = int(length) if length is not None else available
            if bits > available:
                raise ValueError(f"Row code {code!r} declares {bits} bits but holds {available}")
            if len(digits) % 2:
                digits += "0"
            rows.append((bytes.fromhex(digits), bits))
        return cls(rows)

    @property
    def num_rows(self) -> int:
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def bits_per_row(self, index: int) -> int:
        return self._rows[index][1]

    def row(self, index: int) -> bytes:
        return self._rows[index][0]

    def row_bits(self, index: int) -> np.ndarray:
        """Individual bits of a row, first received first"""
        data, bits = self._rows[index]
        return np.unpackbits(np.frombuffer(data, dtype=np.uint8))[:bits]

    def __repr__(self) -> str:
        codes = ", ".join(f"{{{bits}}}{data.hex()}" for data, bits in self._rows)
        return f"BitBuffer([{codes}])"


@dataclass(frozen=True)
class RemoteEvent:
    """Decoded HCS200 code word"""
    serial: int        # 28 bits
    encrypted: int     # 32 bits, opaque hopping code
    button: int        # S3 S2 S1 S0
    learn: bool
    battery_ok: bool
    repeat: bool
    model: str = MODEL

    def to_data(self) -> Dict[str, Union[str, int]]:
        """Output record, fields in OUTPUT_FIELDS order"""
        return OrderedDict([
            ("model", self.model),
            ("id", f"{self.serial:07X}"),
            ("battery_ok", int(self.battery_ok)),
            ("button", self.button),
            ("learn", int(self.learn)),
            ("repeat", int(self.repeat)),
            ("encrypted", f"{self.encrypted:08X}"),
        ])


@dataclass(frozen=True)
class Success:
    event: RemoteEvent

    ok = True
    code = 1


@dataclass(frozen=True)
class Rejected:
    reason: Reason

    ok = False

    @property
    def code(self) -> int:
        return self.reason.value


DecodeOutcome = Union[Success, Rejected]


class PacketDecoder:
    """
    Validate a demodulated HCS200 frame and extract its fields.

    Stateless: each call to decode() depends only on its buffer, which is
    read but never modified or kept.
    """

    def decode(self, buffer: BitBuffer) -> DecodeOutcome:
        # Reject codes of wrong length
        if (buffer.num_rows < 2
                or buffer.bits_per_row(0) != PREAMBLE_BITS
                or buffer.bits_per_row(1) != CODE_WORD_BITS):
            return Rejected(Reason.WRONG_LENGTH)

        # Reject codes with an incorrect preamble (expected 0xfff)
        b = buffer.row(0)
        if b[0] != 0xFF or (b[1] & 0xF0) != 0xF0:
            logger.debug("Preamble not found")
            return Rejected(Reason.PREAMBLE_MISMATCH)

        # Second row is data
        b = buffer.row(1)
        if all(byte == 0xFF for byte in b[1:8]):
            logger.debug("DECODE_FAIL_SANITY data all 0xff")
            return Rejected(Reason.ALL_ONES_SANITY_FAILURE)

        return Success(self._extract(b))

    def _extract(self, b: bytes) -> RemoteEvent:
        """Pull the fields out of the 9-byte code word"""
        # The transmission is LSB first, so every byte is mirrored and the
        # bytes are assembled little endian.
        encrypted = ((reverse_bits(b[3]) << 24) | (reverse_bits(b[2]) << 16)
                     | (reverse_bits(b[1]) << 8) | reverse_bits(b[0]))
        serial = ((reverse_bits(b[7] & 0xF0) << 24) | (reverse_bits(b[6]) << 16)
                  | (reverse_bits(b[5]) << 8) | reverse_bits(b[4]))
        btn = b[7] & 0x0F

        return RemoteEvent(
            serial=serial,
            encrypted=encrypted,
            button=reorder_button(btn),
            learn=btn == 0x0F,
            battery_ok=not (b[8] & 0x80),
            repeat=bool(b[8] & 0x40),
        )


_default_decoder = PacketDecoder()


def decode(buffer: BitBuffer) -> DecodeOutcome:
    """Decode one frame with the shared stateless decoder"""
    return _default_decoder.decode(buffer)


def _list_profiles():
    print(f"{'='*70}")
    print("KNOWN PROFILES")
    print(f"{'='*70}")
    for profile in PROFILES.values():
        print(f"{profile.name}: {profile.description}")
        print(f"   rtl_433 -R 0 -X '{profile.flex_spec()}'")
        print(f"   Threshold: {profile.threshold:.0f}us\n")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Microchip HCS200/HCS300 KeeLoq packet decoder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Rows are given in rtl_433 bitbuffer notation, preamble row first:

  hcs200-decode '{12}fff' '{66}123456789abcde0f40'

  # Show demodulator settings for each supported family
  hcs200-decode --list-profiles
        """
    )

    parser.add_argument('codes', nargs='*',
                        help='Row codes ({N}hex), preamble row then data row')
    parser.add_argument('--list-profiles', action='store_true',
                        help='Show the known transmitter profiles')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log rejection diagnostics')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_profiles:
        _list_profiles()
        return 0

    if not args.codes:
        parser.print_help()
        return 2

    try:
        buffer = BitBuffer.from_codes(args.codes)
    except ValueError as e:
        print(f"[!] Invalid row code: {e}", file=sys.stderr)
        return 2

    outcome = decode(buffer)
    if not outcome.ok:
        print(f"[!] Rejected: {outcome.reason.description} ({outcome.code})")
        return 1

    print(json.dumps(outcome.event.to_data()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
