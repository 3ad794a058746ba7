"""Shared fixtures: small and full-size key sets, an election authority and hosts."""

import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from adder import CryptoContext, generate_threshold_keys
from auditorium import AuditoriumHost, ElectionAuthority, HostPointer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Safe prime p = 2q + 1 with q = 1019; 4 and 9 are squares, so both lie in
# the order-q subgroup.  Small enough that tests run quickly.
SMALL_P = 2039
SMALL_G = 4
SMALL_F = 9

HOST_IDS = ["supervisor", "booth-1", "booth-2"]


@pytest.fixture(scope="session")
def small_keys():
    """(2, 3) threshold key set over the small test group"""
    return generate_threshold_keys(2, 3, p=SMALL_P, g=SMALL_G, f=SMALL_F)


@pytest.fixture(scope="session")
def full_keys():
    """(2, 3) threshold key set over the default 2048-bit group"""
    return generate_threshold_keys(2, 3)


@pytest.fixture
def small_context(small_keys):
    context = CryptoContext(threshold=2)
    context.load_keys(small_keys.public_key, *small_keys.shares)
    return context


@pytest.fixture(scope="session")
def authority():
    return ElectionAuthority("Test Election Authority")


@pytest.fixture
def keystores(authority):
    """One trust store per host, each holding only its own signing key"""
    return {host_id: authority.create_keystore(HOST_IDS, signing_hosts=[host_id])
            for host_id in HOST_IDS}


@pytest.fixture
def hosts(keystores):
    return {host_id: AuditoriumHost(HostPointer(host_id, "127.0.0.1", 9700 + i), keystores[host_id])
            for i, host_id in enumerate(HOST_IDS)}


@pytest.fixture
def host(hosts):
    return hosts[HOST_IDS[0]]
