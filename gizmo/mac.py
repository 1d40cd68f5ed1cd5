"""Encoding of team numbers as locally administered MAC addresses."""

from __future__ import annotations


def _tdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _tmod(a: int, b: int) -> int:
    """Remainder matching truncating division."""
    return a - _tdiv(a, b) * b


def number_to_mac(team: int, index: int) -> str:
    """Encode *team* as a MAC address whose last byte is *index*.

    Each decimal digit of the team number occupies one nibble of the
    fourth and fifth bytes.
    """
    rest = _tmod(team, 1000)
    d1 = _tdiv(team, 1000) * 16
    d2 = _tdiv(rest, 100)
    d3 = _tdiv(_tmod(rest, 100), 10) * 16
    d4 = _tmod(_tmod(rest, 100), 10)
    octets = [0x02, 0x00, 0x00, d1 + d2, d3 + d4, index]
    return ":".join(f"{octet & 0xFF:02x}" for octet in octets)