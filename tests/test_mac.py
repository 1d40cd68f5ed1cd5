import re

import pytest

from gizmo.mac import number_to_mac


def test_digits_become_nibbles():
    assert number_to_mac(1234, 1) == "02:00:00:12:34:01"


@pytest.mark.parametrize("team", [0, 1, 99, 100, 4321, 9999])
def test_format_and_prefix(team):
    mac = number_to_mac(team, 0)
    assert re.fullmatch(r"([0-9a-f]{2}:){5}[0-9a-f]{2}", mac)
    assert mac.startswith("02:00:00:")


@pytest.mark.parametrize("index", [0, 1, 200])
def test_index_is_last_byte(index):
    assert int(number_to_mac(55, index).split(":")[-1], 16) == index


def test_gizmo_and_ds_differ_only_in_last_byte():
    gizmo = number_to_mac(2468, 0).split(":")
    ds = number_to_mac(2468, 1).split(":")
    assert gizmo[:5] == ds[:5]
    assert gizmo[5] != ds[5]