"""Tests for private/loopback literal IP classification."""
import pytest

from corsproxy.netaddr import is_private_addr


@pytest.mark.parametrize(
    "host, private, parsed",
    [
        ("127.0.0.1", True, True),
        ("192.168.0.1", True, True),
        ("10.0.0.1", True, True),
        ("172.16.0.1", True, True),
        ("8.8.8.8", False, True),
        ("example.com", False, False),
        ("127.0.0.1:8080", True, True),
        ("192.168.0.1:8080", True, True),
        ("8.8.8.8:8080", False, True),
        ("10.0.0.1:8080", True, True),
    ],
)
def test_is_private_addr_ipv4(host, private, parsed):
    assert is_private_addr(host) == (private, parsed)


@pytest.mark.parametrize(
    "host, private, parsed",
    [
        ("::1", True, True),
        ("[::1]", True, True),
        ("[::1]:8080", True, True),
        ("fd00::1", True, True),
        ("fe80::1", True, True),
        ("[2001:4860:4860::8888]:443", False, True),
        ("::ffff:10.0.0.1", True, True),
    ],
)
def test_is_private_addr_ipv6(host, private, parsed):
    assert is_private_addr(host) == (private, parsed)


def test_link_local_is_private():
    assert is_private_addr("169.254.169.254") == (True, True)


def test_names_are_never_private():
    assert is_private_addr("localhost") == (False, False)
    assert is_private_addr("example.com:8080") == (False, False)
    assert is_private_addr("") == (False, False)


@pytest.mark.parametrize(
    "host, private",
    [
        ("2130706433", True),
        ("127.1", True),
        ("0x7f000001", True),
        ("0177.0.0.1", True),
        ("0x7f.0.0.1:8080", True),
        ("10.1", True),
        ("3232235521", True),
        ("134744072", False),
        ("127.0.0.1.", True),
    ],
)
def test_numeric_ipv4_spellings_are_literals(host, private):
    assert is_private_addr(host) == (private, True)


def test_numeric_looking_names_stay_names():
    assert is_private_addr("1.2.3.4.5") == (False, False)
    assert is_private_addr("0x7g.0.0.1") == (False, False)
    assert is_private_addr("127.0.0.1.example.com") == (False, False)
